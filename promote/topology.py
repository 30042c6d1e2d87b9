"""Environment topology.

Environments are named after their tier and an instance number, e.g. "test1",
"stage2" or "prod1". Names are parsed once, into an EnvironmentIdentity, and
everything downstream works with the parsed value.

Code moves up the chain one tier at a time:

    test  -> every stage instance
    stage -> every prod instance

Content (database and static files) only ever moves down, from the canonical
production instance into a test or stage environment.
"""

import enum
import re
from dataclasses import dataclass, field
from typing import List, Optional

from .errors import (
    InvalidLocalTier,
    NoDestinationFound,
    RegistryError,
    SourceUnreachable,
    UnsupportedTier,
)


class Tier(enum.Enum):
    TEST = "test"
    STAGE = "stage"
    PRODUCTION = "prod"


# "production" is accepted on input and normalized to the "prod" token.
_IDENTITY_PATTERN = re.compile(r"(test|stage|prod|production)([0-9]*)")

_TIER_TOKENS = {
    "test": Tier.TEST,
    "stage": Tier.STAGE,
    "prod": Tier.PRODUCTION,
    "production": Tier.PRODUCTION,
}

_NEXT_TIER = {
    Tier.TEST: Tier.STAGE,
    Tier.STAGE: Tier.PRODUCTION,
}


@dataclass(frozen=True)
class EnvironmentIdentity:
    tier: Tier
    number: Optional[int] = None
    # The registry alias this identity was parsed from, e.g. "production2" or
    # "stage01". Lookups use it; comparison and ordering do not.
    alias: Optional[str] = field(default=None, compare=False)

    @property
    def name(self) -> str:
        suffix = "" if self.number is None else str(self.number)
        return f"{self.tier.value}{suffix}"

    @property
    def sort_key(self) -> int:
        # An instance without a number sorts below every numbered one.
        return -1 if self.number is None else self.number

    def __str__(self) -> str:
        return self.alias or self.name


@dataclass(frozen=True)
class EnvironmentDescriptor:
    identity: EnvironmentIdentity
    uri: str
    host: Optional[str] = None
    user: Optional[str] = None
    root: Optional[str] = None

    @property
    def is_local(self) -> bool:
        return self.host is None

    def location(self, path: str) -> str:
        """Render path on this environment as an rsync location."""
        if self.is_local:
            return path
        if self.user:
            return f"{self.user}@{self.host}:{path}"
        return f"{self.host}:{path}"

    def __str__(self) -> str:
        return str(self.identity)


def parse_identity(text) -> EnvironmentIdentity:
    """Parse an environment name such as "stage2".

    Raises:
        UnsupportedTier: text is not a tier token optionally followed by
                         digits.
    """
    if isinstance(text, EnvironmentIdentity):
        return text

    match = _IDENTITY_PATTERN.fullmatch(str(text))
    if not match:
        raise UnsupportedTier(
            f"'{text}' is not an environment identity."
            " Expected test<n>, stage<n> or prod<n>."
        )
    token, digits = match.groups()
    number = int(digits) if digits else None
    return EnvironmentIdentity(_TIER_TOKENS[token], number, alias=str(text))


def resolve_destination_tier(local_identity) -> Tier:
    """Return the tier that code on local_identity is promoted to.

    Raises:
        UnsupportedTier: local_identity is a production environment, or is
                         not an environment identity at all.
    """
    identity = parse_identity(local_identity)
    if identity.tier not in _NEXT_TIER:
        raise UnsupportedTier(
            f"Code cannot be promoted from {identity.name}:"
            " only test and stage environments have a next tier."
        )
    return _NEXT_TIER[identity.tier]


def enumerate_destinations(tier: Tier, registry) -> List[EnvironmentDescriptor]:
    """List every registered instance of tier, highest instance number first.

    The order is the order destinations are promoted in.

    Raises:
        NoDestinationFound: the registry has no instance of tier, or could
                            not be queried.
    """
    try:
        names = registry.list_instances(tier.value)
    except RegistryError as e:
        raise NoDestinationFound(
            f"Could not list '{tier.value}' instances in the registry:\n\n{e}"
        ) from e

    # "stage1" and "stage01" are one environment; the first alias listed wins.
    identities = {}
    for name in names:
        try:
            identity = parse_identity(name)
        except UnsupportedTier:
            continue
        if identity.tier is tier:
            identities.setdefault(identity, identity)

    if not identities:
        raise NoDestinationFound(f"No '{tier.value}' instance is registered.")

    ordered = sorted(identities.values(), key=lambda i: i.sort_key, reverse=True)
    descriptors = []
    for identity in ordered:
        try:
            descriptors.append(registry.describe(identity))
        except RegistryError as e:
            raise NoDestinationFound(
                f"Could not resolve destination {identity}:\n\n{e}"
            ) from e
    return descriptors


def require_content_destination(local_identity) -> EnvironmentIdentity:
    """Check that local_identity may receive content from production.

    Raises:
        InvalidLocalTier: local_identity is not a test or stage environment.
    """
    try:
        identity = parse_identity(local_identity)
    except UnsupportedTier as e:
        raise InvalidLocalTier(str(e)) from e

    if identity.tier not in (Tier.TEST, Tier.STAGE):
        raise InvalidLocalTier(
            f"Content can only be refreshed on test or stage environments,"
            f" this is {identity.name}."
        )
    return identity


def resolve_content_source(local_identity, registry, settings) -> EnvironmentDescriptor:
    """Resolve the canonical production instance content is pulled from.

    The source never depends on which test or stage environment asks for it.

    Raises:
        InvalidLocalTier: local_identity is not a test or stage environment.
        SourceUnreachable: the registry does not know the source.
    """
    require_content_destination(local_identity)

    source = EnvironmentIdentity(Tier.PRODUCTION, settings.canonical_production_instance)
    try:
        return registry.describe(registered_alias(source, registry))
    except RegistryError as e:
        raise SourceUnreachable(f"Could not resolve content source {source}:\n\n{e}") from e


def registered_alias(identity, registry) -> EnvironmentIdentity:
    """Find the alias the registry uses for identity, which may be spelled
    "production1" or "prod01". Falls back to identity itself when no
    listed alias matches."""
    for name in registry.list_instances(identity.tier.value):
        try:
            candidate = parse_identity(name)
        except UnsupportedTier:
            continue
        if candidate == identity:
            return candidate
    return identity
