#!/usr/bin/env python
# In-memory stand-ins for the registry, rsync and drush. Every operation that
# would change an environment is appended to a shared journal, so tests can
# assert on the exact sequence a pipeline produced.
from promote.errors import RegistryError, ToolError
from promote.pipeline import Toolkit
from promote.registry import Registry
from promote.topology import EnvironmentDescriptor, parse_identity

# A small deployment: two test instances, three stage instances and one
# production instance, all remote except test1. Hosts are named after the
# environment they serve.
ALIASES = {
    "test1": {"uri": "https://test1.example.org"},
    "test2": {"uri": "https://test2.example.org", "remote-host": "test2"},
    "stage3": {"uri": "https://stage3.example.org", "remote-host": "stage3", "remote-user": "deploy"},
    "stage1": {"uri": "https://stage1.example.org", "remote-host": "stage1", "remote-user": "deploy"},
    "stage2": {"uri": "https://stage2.example.org", "remote-host": "stage2", "remote-user": "deploy"},
    "prod1": {"uri": "https://www.example.org", "remote-host": "prod1", "remote-user": "deploy"},
}

ROOT = "/var/www/site/docroot"


class FakeRegistry(Registry):
    def __init__(self, local="test1", aliases=None, root=ROOT, fail=(), unreachable=()):
        self.local = local
        self.aliases = dict(ALIASES if aliases is None else aliases)
        self.root = root
        self.fail = set(fail)
        self.unreachable = {str(u) for u in unreachable}
        self.queries = []

    def _query(self, name, *args):
        self.queries.append((name, *[str(a) for a in args]))
        if name in self.fail:
            raise RegistryError(f"{name} failed")

    def lookup_local(self):
        self._query("lookup_local")
        return self.local

    def lookup_uri(self, identity):
        self._query("lookup_uri", identity)
        record = self.aliases.get(str(identity))
        if record is None:
            raise RegistryError(f"no alias {identity}")
        return record["uri"]

    def lookup_root(self, identity):
        self._query("lookup_root", identity)
        return self.root

    def list_instances(self, tier_prefix):
        self._query("list_instances", tier_prefix)
        return [name for name in self.aliases if name.startswith(tier_prefix)]

    def describe(self, identity):
        self._query("describe", identity)
        record = self.aliases.get(str(identity))
        if record is None:
            raise RegistryError(f"no alias {identity}")
        return EnvironmentDescriptor(
            identity=parse_identity(identity),
            uri=record["uri"],
            host=record.get("remote-host"),
            user=record.get("remote-user"),
        )

    def probe(self, identity):
        self._query("probe", identity)
        if str(identity) in self.unreachable:
            raise RegistryError(f"{identity} did not answer")


class Journal(list):
    """The ordered record of mutating operations. A (operation, target)
    pair in fail_on makes that operation raise a ToolError instead."""

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)

    def record(self, operation, target, *details):
        self.append((operation, str(target), *details))
        if (operation, str(target)) in self.fail_on:
            raise ToolError(f"{operation} exited with status 1", 1)

    def operations(self, target=None):
        return [entry[0] for entry in self if target is None or entry[1] == target]


class FakeMirror:
    def __init__(self, journal):
        self.journal = journal

    def mirror(self, source, destination, excludes=(), checksum=False):
        # remote destinations are journaled under their host, local ones
        # under their path
        host, sep, _ = destination.rpartition(":")
        target = host.split("@")[-1] if sep else destination
        self.journal.record("mirror", target, source, destination, tuple(excludes), checksum)


class FakeDatabase:
    def __init__(self, journal):
        self.journal = journal

    def drop_all_tables(self, destination):
        self.journal.record("drop_all_tables", destination)

    def sync(self, source, destination):
        self.journal.record("sync", destination, str(source))

    def apply_migrations(self, destination):
        self.journal.record("apply_migrations", destination)

    def clear_cache(self, destination):
        self.journal.record("clear_cache", destination)


class FakeMaintenance:
    def __init__(self, journal):
        self.journal = journal

    def enter(self, destination):
        self.journal.record("maintenance_on", destination)

    def exit(self, destination):
        self.journal.record("maintenance_off", destination)


def make_toolkit(registry=None, journal=None, user="deploy"):
    journal = Journal() if journal is None else journal
    return Toolkit(
        registry=registry or FakeRegistry(),
        mirror=FakeMirror(journal),
        database=FakeDatabase(journal),
        maintenance=FakeMaintenance(journal),
        whoami=lambda: user,
    )
