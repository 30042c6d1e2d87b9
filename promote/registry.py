"""The site-alias registry.

Every environment a promotion touches is registered as a drush site alias.
The registry answers four read-only questions about them: which alias is
this machine, what is an alias's URI, where is its docroot, and which
aliases exist. Any failure is reported as a RegistryError.
"""

import json
import socket
from functools import wraps
from typing import List

from .errors import RegistryError, ToolError, UnsupportedTier
from .topology import EnvironmentDescriptor, parse_identity


def alias_name(identity, group=None) -> str:
    """Render the drush alias for an environment, e.g. "@mysite.stage1"."""
    if group:
        return f"@{group}.{identity}"
    return f"@{identity}"


def as_registry_error(func):
    """A decorator that re-raises any ToolError as a RegistryError, so that
    callers only have one kind of registry failure to handle."""

    @wraps(func)
    def as_registry_error_wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except RegistryError:
            raise
        except ToolError as e:
            raise RegistryError(str(e), e.returncode) from e

    return as_registry_error_wrapper


class Registry:
    """The contract every registry implements."""

    def lookup_local(self) -> str:
        raise NotImplementedError

    def lookup_uri(self, identity) -> str:
        raise NotImplementedError

    def lookup_root(self, identity) -> str:
        raise NotImplementedError

    def list_instances(self, tier_prefix) -> List[str]:
        raise NotImplementedError

    def describe(self, identity) -> EnvironmentDescriptor:
        raise NotImplementedError

    def probe(self, identity) -> None:
        raise NotImplementedError


class DrushRegistry(Registry):
    def __init__(self, runner, settings):
        self.runner = runner
        self.drush = settings.drush
        self.group = settings.alias_group
        self._records = None

    def alias(self, identity) -> str:
        return alias_name(identity, self.group)

    @as_registry_error
    def records(self):
        """Load every alias record once per run.

        Returns:
            A dictionary of alias names, without "@" or group prefix, to the
            alias record drush reports for them.
        """
        if self._records is not None:
            return self._records

        raw = self.runner.query([self.drush, "site-alias", "--format=json"])
        try:
            loaded = json.loads(raw or "{}")
        except json.JSONDecodeError as e:
            raise RegistryError(f"drush returned malformed alias json: {e}") from e
        if not isinstance(loaded, dict):
            raise RegistryError(f"drush returned an unexpected alias list: {loaded!r}")

        prefix = f"{self.group}." if self.group else ""
        records = {}
        for key, record in loaded.items():
            name = key.lstrip("@")
            if prefix:
                if not name.startswith(prefix):
                    continue
                name = name[len(prefix):]
            records[name] = record if isinstance(record, dict) else {}

        self._records = records
        return records

    def record(self, identity):
        records = self.records()
        name = str(identity)
        if name not in records:
            raise RegistryError(f"No site alias registered for {self.alias(name)}.")
        return records[name]

    def lookup_local(self) -> str:
        """Find the alias of the machine this runs on: the one alias that
        either has no remote host or whose remote host is this machine."""
        here = {socket.gethostname(), socket.getfqdn(), "localhost", "127.0.0.1"}
        local = []
        for name, record in self.records().items():
            host = record.get("remote-host")
            if host is not None and host not in here:
                continue
            try:
                parse_identity(name)
            except UnsupportedTier:
                # "@self", "@none" and other non-environment aliases
                continue
            local.append(name)

        if len(local) != 1:
            raise RegistryError(
                f"Expected exactly one local environment alias, found {sorted(local)}."
            )
        return local[0]

    def lookup_uri(self, identity) -> str:
        uri = self.record(identity).get("uri")
        if not uri:
            raise RegistryError(f"Site alias {self.alias(identity)} has no uri.")
        return uri

    @as_registry_error
    def lookup_root(self, identity) -> str:
        root = self.runner.query([self.drush, self.alias(identity), "drupal-directory"]).strip()
        if not root:
            raise RegistryError(f"drush reported no root for {self.alias(identity)}.")
        return root

    def list_instances(self, tier_prefix) -> List[str]:
        return [name for name in self.records() if name.startswith(tier_prefix)]

    def describe(self, identity) -> EnvironmentDescriptor:
        identity = parse_identity(identity)
        record = self.record(identity)
        return EnvironmentDescriptor(
            identity=identity,
            uri=self.lookup_uri(identity),
            host=record.get("remote-host"),
            user=record.get("remote-user"),
            root=record.get("root"),
        )

    @as_registry_error
    def probe(self, identity) -> None:
        """Confirm that the environment answers. drush bootstraps the site
        over SSH for remote aliases, so this checks both the network path
        and the site itself."""
        self.runner.query([self.drush, self.alias(identity), "core-status", "--format=json"])
