#!/usr/bin/env python
# Thin wrappers around rsync and drush. Each method runs exactly one
# command and lets a ToolError propagate untouched; deciding what a failure
# means is left to the pipelines.
from .registry import alias_name

# -a  recursive, symlinks, permissions, timestamps, owner, group
# -H  hard links
# --delete      remove destination files that are gone from the source
# --safe-links  skip symlinks that point outside the tree
RSYNC_MIRROR_FLAGS = ["-a", "-H", "--delete", "--safe-links"]


def with_trailing_slash(location):
    # rsync copies the contents of "src/" but the directory itself for "src".
    return location if location.endswith("/") else location + "/"


class Mirror:
    def __init__(self, runner, settings):
        self.runner = runner
        self.rsync = settings.rsync

    def command(self, source, destination, excludes=(), checksum=False):
        cmd = [self.rsync, *RSYNC_MIRROR_FLAGS]
        if checksum:
            cmd.append("--checksum")
        for pattern in excludes:
            cmd.append(f"--exclude={pattern}")
        cmd += [with_trailing_slash(source), with_trailing_slash(destination)]
        return cmd

    def mirror(self, source, destination, excludes=(), checksum=False):
        """Make destination an exact copy of source.

        Args:
            source: An rsync location, "host:/path" or a local path.
            destination: An rsync location.
            excludes: rsync exclude patterns, left alone on both sides.
            checksum: Compare file checksums instead of size and mtime.
        """
        return self.runner.execute(self.command(source, destination, excludes, checksum))


class DrushDatabase:
    def __init__(self, runner, settings):
        self.runner = runner
        self.drush = settings.drush
        self.group = settings.alias_group

    def alias(self, environment):
        return alias_name(environment, self.group)

    def drop_all_tables(self, destination):
        return self.runner.execute([self.drush, self.alias(destination), "sql-drop", "--yes"])

    def sync(self, source, destination):
        return self.runner.execute(
            [self.drush, "sql-sync", self.alias(source), self.alias(destination), "--yes"]
        )

    def apply_migrations(self, destination):
        return self.runner.execute([self.drush, self.alias(destination), "updatedb", "--yes"])

    def clear_cache(self, destination):
        return self.runner.execute([self.drush, self.alias(destination), "cache-clear", "all"])


class DrushMaintenance:
    """Maintenance mode is the site's own read-only flag, so entering it is
    visible to everyone browsing that instance."""

    def __init__(self, runner, settings):
        self.runner = runner
        self.drush = settings.drush
        self.group = settings.alias_group

    def set(self, destination, enabled):
        return self.runner.execute(
            [
                self.drush,
                alias_name(destination, self.group),
                "variable-set",
                "maintenance_mode",
                "1" if enabled else "0",
                "--yes",
            ]
        )

    def enter(self, destination):
        return self.set(destination, True)

    def exit(self, destination):
        return self.set(destination, False)
