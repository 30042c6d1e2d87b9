"""Content promotion: refresh a test or stage environment from production.

The environment this runs on is the destination. Its static files and its
database are replaced with those of the canonical production instance:

1. check that the production source resolves and answers,
2. mirror the shared static files directory from production,
3. drop every table in the local database,
4. copy the production database into it,
5. clear the local cache.

The import always lands in an empty schema. A failure between steps 3 and 4
leaves the local database empty. Nothing is rolled back; the run stops at
the first failing step.
"""

from .errors import LocalAliasUnavailable, RegistryError, SourceUnreachable
from .lock import run_lock
from .logs import promote_logger
from .pipeline import ensure_operator, step
from .topology import require_content_destination, resolve_content_source
from . import output

EMPTY_DATABASE_HINT = (
    "The destination database was dropped before this step and is now EMPTY."
    " Re-run the content promotion once the cause is fixed."
)


def resolve_local(registry):
    try:
        return registry.lookup_local()
    except RegistryError as e:
        raise LocalAliasUnavailable(f"Could not identify this environment:\n\n{e}") from e


def check_source(toolkit, local, settings):
    source = resolve_content_source(local, toolkit.registry, settings)
    try:
        toolkit.registry.probe(source.identity)
    except RegistryError as e:
        raise SourceUnreachable(f"Content source {source} is not reachable:\n\n{e}") from e
    return source


def promote_content(toolkit, settings):
    """Run the content promotion pipeline.

    Args:
        toolkit: The external collaborators, see promote.pipeline.Toolkit.
        settings: A promote.config.Settings object.
    Returns:
        The descriptor of the source environment content was pulled from.
    Raises:
        PromotionError: A precondition or step failed. Nothing after the
                        failing step was run.
    """
    ensure_operator(settings, toolkit.whoami)

    local = require_content_destination(resolve_local(toolkit.registry))
    promote_logger.info("Refreshing content from production.", extra={"label": local.name})

    with run_lock([local], settings.lock, toolkit.lock_conn):
        output.title(f"Checking connectivity to production from {local}")
        source = check_source(toolkit, local, settings)
        output.body(f"Content source: {source} ({source.uri})")

        # The static files directory is shared by every instance of the
        # tier, so one mirror serves all of them.
        with step("Static file mirror", local):
            toolkit.mirror.mirror(
                source.location(settings.static_files_path),
                settings.static_files_path,
                excludes=settings.static_excludes,
            )

        with step("Schema reset", local):
            toolkit.database.drop_all_tables(local)

        with step("Database sync", local, hint=EMPTY_DATABASE_HINT):
            toolkit.database.sync(source.identity, local)

        with step("Cache clear", local):
            toolkit.database.clear_cache(local)

    output.done(f"{local} now holds the content of {source}.")
    return source
