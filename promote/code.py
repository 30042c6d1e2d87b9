"""Code promotion: push this environment's code to every instance of the
next tier up.

test environments promote to every stage instance, stage environments to
every prod instance. Destinations are handled one at a time, highest
instance number first, and each goes through the full sequence before the
next one starts:

    enter maintenance mode
    mirror the code directory (checksum based)
    apply pending migrations
    clear cache
    exit maintenance mode
    clear cache again

If a step fails the run stops. The destination it failed on may be left in
maintenance mode, and destinations after it keep their old code.
"""

from pathlib import PurePosixPath

from .errors import (
    LocalAliasUnavailable,
    PromotionError,
    RegistryError,
    RootPathUnavailable,
)
from .lock import run_lock
from .logs import promote_logger
from .pipeline import ensure_operator, step
from .topology import enumerate_destinations, resolve_destination_tier
from .utils import is_within
from . import output

MAINTENANCE_HINT = (
    "{target} may still be in maintenance mode. Check it and exit"
    " maintenance mode by hand if needed."
)


def identify_local(registry):
    """Resolve the identity and URI of the environment this runs on.

    Raises:
        LocalAliasUnavailable: either lookup failed.
    """
    try:
        name = registry.lookup_local()
        uri = registry.lookup_uri(name)
    except RegistryError as e:
        raise LocalAliasUnavailable(f"Could not identify this environment:\n\n{e}") from e
    return name, uri


def derive_code_dir(registry, destination):
    """Find the directory code is deployed to.

    Every instance of a tier shares one path layout, so a single
    destination is asked for its docroot; the code directory is the
    docroot's parent.

    Raises:
        RootPathUnavailable: the root could not be queried, or has no parent.
    """
    try:
        root = registry.lookup_root(destination.identity)
    except RegistryError as e:
        raise RootPathUnavailable(f"Could not query the root of {destination}:\n\n{e}") from e

    root_path = PurePosixPath(root.rstrip("/") or "/")
    if not root_path.is_absolute() or root_path.parent == root_path:
        raise RootPathUnavailable(
            f"{destination} reported root '{root}', which has no parent code directory."
        )
    return str(root_path.parent)


def promote_destination(toolkit, settings, destination, code_dir):
    hint = MAINTENANCE_HINT.format(target=destination)

    with step("Enter maintenance mode", destination):
        toolkit.maintenance.enter(destination.identity)

    with step("Code mirror", destination, hint=hint):
        toolkit.mirror.mirror(
            code_dir,
            destination.location(code_dir),
            excludes=settings.code_excludes,
            checksum=True,
        )

    with step("Apply migrations", destination, hint=hint):
        toolkit.database.apply_migrations(destination.identity)

    with step("Cache clear", destination, hint=hint):
        toolkit.database.clear_cache(destination.identity)

    with step("Exit maintenance mode", destination, hint=hint):
        toolkit.maintenance.exit(destination.identity)

    with step("Cache clear after maintenance", destination):
        toolkit.database.clear_cache(destination.identity)


def promote_code(toolkit, settings):
    """Run the code promotion pipeline.

    Args:
        toolkit: The external collaborators, see promote.pipeline.Toolkit.
        settings: A promote.config.Settings object.
    Returns:
        The list of destination descriptors, in the order they were promoted.
    Raises:
        PromotionError: A precondition or step failed. Nothing after the
                        failing step was run.
    """
    ensure_operator(settings, toolkit.whoami)

    output.title("Identifying this environment")
    name, uri = identify_local(toolkit.registry)
    output.body(f"Local environment: {name} ({uri})")

    tier = resolve_destination_tier(name)
    destinations = enumerate_destinations(tier, toolkit.registry)
    output.body("Destinations: " + ", ".join(str(d) for d in destinations))

    with run_lock([d.identity for d in destinations], settings.lock, toolkit.lock_conn):
        code_dir = derive_code_dir(toolkit.registry, destinations[0])
        if is_within(settings.work_dir, code_dir):
            raise PromotionError(
                f"work_dir {settings.work_dir} is inside the code directory {code_dir}."
            )
        output.body(f"Code directory: {code_dir}")

        for destination in destinations:
            promote_logger.info(f"Promoting code from {name}.", extra={"label": str(destination)})
            promote_destination(toolkit, settings, destination, code_dir)
            output.done(f"{destination} is up to date.")

    return destinations
