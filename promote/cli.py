# This file creates the CLI for the promotion pipelines. It's designed to
# have as little knowledge as possible about what goes on in a pipeline: it
# loads settings, builds the toolkit, runs the function it was given, and
# turns a PromotionError into a message and an exit status.
#
# The pipelines take no arguments. Everything they do is derived from the
# environment they run on; the options below only change how a run is
# configured and reported.
import json

import click
from rich import traceback

from .config import load_settings
from .content import promote_content
from .code import promote_code
from .errors import PromotionError
from .logs import promote_logger, set_verbose
from .pipeline import build_toolkit, report_topology
from .validate import ValidationError
from . import output


def common_options(func):
    """Options shared by every command."""
    func = click.option(
        "-v", "--verbose", is_flag=True, help="Log every query and command that is run."
    )(func)
    func = click.option(
        "-n",
        "--dry-run",
        is_flag=True,
        help="Run read-only queries, but only print the commands that change anything.",
    )(func)
    func = click.option(
        "-c",
        "--config",
        envvar="PROMOTE_CONFIG",
        type=click.Path(exists=True, dir_okay=False),
        help="A YAML settings file. Defaults to $PROMOTE_CONFIG, then built-in defaults.",
    )(func)
    return func


def prepare(config, dry_run, verbose, settings_loader, toolkit_factory):
    set_verbose(verbose)
    try:
        settings = settings_loader(config)
    except ValidationError as err:
        raise click.ClickException(f"Invalid settings: {err}")
    return settings, toolkit_factory(settings, dry_run=dry_run)


def run_pipeline(ctx, main_fn, settings, toolkit):
    """Run main_fn, exiting with the error's exit status if it fails."""
    try:
        main_fn(toolkit, settings)
    except PromotionError as err:
        promote_logger.error(f"{type(err).__name__}: {err}")
        output.alert(str(err))
        ctx.exit(err.exit_code)


def create_command(
    name, main_fn, help_text, settings_loader=load_settings, toolkit_factory=build_toolkit
):
    """A utility function to create a CLI command that runs a single
    pipeline function. Used for the subcommands of the "promote" group and
    for the standalone promote-content and promote-code commands.

    Args:
        name: The command name.
        main_fn: A function that accepts (toolkit, settings).
        help_text: The --help text of the command.
        settings_loader: Called with the --config path, returns Settings.
        toolkit_factory: Called with (settings, dry_run=...), returns a Toolkit.
    Returns:
        A click command.
    """

    @click.command(name=name, help=help_text)
    @common_options
    @click.pass_context
    def command(ctx, config=None, dry_run=False, verbose=False):
        settings, toolkit = prepare(config, dry_run, verbose, settings_loader, toolkit_factory)
        run_pipeline(ctx, main_fn, settings, toolkit)

    return command


CONTENT_HELP = """Refresh this test or stage environment's database and
static files from production. Destroys the local database before import."""

CODE_HELP = """Promote this environment's code to every instance of the next
tier up (test to stage, stage to prod), one instance at a time, inside a
maintenance-mode window."""


def create_cli(
    content_fn, code_fn, topology_fn, settings_loader=load_settings, toolkit_factory=build_toolkit
):
    """A utility function to create the "promote" command group.

    The pipeline functions are passed in rather than imported, so that unit
    tests can check what the CLI hands to them.

    Args:
        content_fn: The content pipeline, accepting (toolkit, settings).
        code_fn: The code pipeline, accepting (toolkit, settings).
        topology_fn: A function accepting (toolkit, settings) and returning
                     a JSON-serializable report.
    Returns:
        A click group.
    """

    @click.group()
    def cli():
        """Move code up, and content down, the test -> stage -> prod chain."""

    cli.add_command(
        create_command("content", content_fn, CONTENT_HELP, settings_loader, toolkit_factory)
    )
    cli.add_command(create_command("code", code_fn, CODE_HELP, settings_loader, toolkit_factory))

    @cli.command()
    @common_options
    def topology(config=None, dry_run=False, verbose=False):
        """Show where code and content would move from this environment.
        Only read-only queries are run."""
        settings, toolkit = prepare(config, dry_run, verbose, settings_loader, toolkit_factory)
        click.echo(json.dumps(topology_fn(toolkit, settings), indent=4))

    return cli


cli = create_cli(promote_content, promote_code, report_topology)
content_cli = create_command("promote-content", promote_content, CONTENT_HELP)
code_cli = create_command("promote-code", promote_code, CODE_HELP)


def main():
    traceback.install()
    cli()


def content_main():
    traceback.install()
    content_cli()


def code_main():
    traceback.install()
    code_cli()
