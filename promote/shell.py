#!/usr/bin/env python
import os
import shlex
import subprocess

from .errors import ToolError, catch_process_error
from .logs import promote_logger
from . import output


def render(cmd):
    return " ".join(shlex.quote(str(c)) for c in cmd)


class Runner:
    """Runs the external tools a promotion is made of.

    All commands are run from work_dir, so that no tool ever picks up the
    code tree it is operating on from its working directory.

    Commands come in two kinds. Queries (registry lookups, reachability
    probes) never change anything and always run. Mutations change a remote
    or local environment; in a dry run they are printed instead of executed.
    """

    def __init__(self, work_dir, dry_run=False):
        self.work_dir = str(work_dir)
        self.dry_run = dry_run

    def check_work_dir(self):
        """
        Raises:
            ToolError: work_dir does not exist. subprocess would report this
                       as the command itself being missing.
        """
        if not os.path.isdir(self.work_dir):
            raise ToolError(
                f"work_dir {self.work_dir} does not exist or is not a directory."
                " Create it, or set work_dir in the settings file."
            )

    @catch_process_error
    def query(self, cmd):
        """Run a read-only command and return its stdout as a string.

        Raises:
            ToolError: The command exited with a non-zero status.
        """
        promote_logger.debug(f"query: {render(cmd)}")
        self.check_work_dir()
        completed = subprocess.run(
            [str(c) for c in cmd],
            cwd=self.work_dir,
            capture_output=True,
            check=True,
            text=True,
        )
        return completed.stdout

    @catch_process_error
    def execute(self, cmd):
        """Run a command that changes an environment.

        stdout is passed through to the operator, since rsync and drush
        report their own progress. stderr is captured so that it can be
        quoted in the error if the command fails.

        Raises:
            ToolError: The command exited with a non-zero status.
        """
        if self.dry_run:
            output.body(f"[dry-run] {render(cmd)}")
            return ""

        promote_logger.info(f"execute: {render(cmd)}")
        self.check_work_dir()
        completed = subprocess.run(
            [str(c) for c in cmd],
            cwd=self.work_dir,
            stderr=subprocess.PIPE,
            check=True,
            text=True,
        )
        return completed.stdout or ""
