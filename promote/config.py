#!/usr/bin/env python
# Settings for a promotion run. The values below are the conventions the
# deployment was built around; a YAML file passed with --config (or through
# the PROMOTE_CONFIG environment variable) overrides any of them.
import tempfile
from dataclasses import dataclass
from typing import Optional, Tuple

import toolz

from .utils import yaml_load
from .validate import (
    ValidationError,
    validate_known_keys,
    validate_settings,
    validate_settings_yaml,
)

# The only account allowed to run either pipeline.
OPERATOR_ACCOUNT = "deploy"

# Production instance that content is always pulled from, "prod1".
CANONICAL_PRODUCTION_INSTANCE = 1

# Static files are shared by every instance of a tier and live at the same
# path on every host.
STATIC_FILES_PATH = "/var/www/shared/files"

# Generated or transient directories under the static files tree. They are
# rebuilt by the CMS on demand and never mirrored.
STATIC_EXCLUDES = ["css/", "js/", "styles/", "php/", "ctools/", "tmp/", ".DS_Store"]

# Version-control metadata and the routing-exclusion file are kept per tier.
CODE_EXCLUDES = [".git", ".gitignore", "robots.txt"]

DEFAULTS = {
    "operator_account": OPERATOR_ACCOUNT,
    "alias_group": None,
    "canonical_production_instance": CANONICAL_PRODUCTION_INSTANCE,
    "static_files_path": STATIC_FILES_PATH,
    "static_excludes": STATIC_EXCLUDES,
    "code_excludes": CODE_EXCLUDES,
    "drush": "drush",
    "rsync": "rsync",
    # Every external command runs from here, never from inside the code tree.
    "work_dir": tempfile.gettempdir(),
    "lock": {
        # Must be shared by every host that runs promotions. Unset, runs
        # refuse to start unless redis_url is set.
        "dir": None,
        "expire_seconds": 3600,
        "redis_url": None,
    },
}


@dataclass(frozen=True)
class LockSettings:
    dir: Optional[str]
    expire_seconds: int
    redis_url: Optional[str]


@dataclass(frozen=True)
class Settings:
    operator_account: str
    alias_group: Optional[str]
    canonical_production_instance: int
    static_files_path: str
    static_excludes: Tuple[str, ...]
    code_excludes: Tuple[str, ...]
    drush: str
    rsync: str
    work_dir: str
    lock: LockSettings


def merge_settings(loaded):
    """Merge a loaded settings mapping over DEFAULTS. The 'lock' section is
    merged key by key, so a file may override a single lock value."""
    loaded = loaded or {}
    lock = toolz.merge(DEFAULTS["lock"], loaded.get("lock") or {})
    return toolz.merge(DEFAULTS, loaded, {"lock": lock})


def settings_from_dict(data):
    """Build a Settings object from a fully merged dictionary, raising a
    ValidationError if any value is malformed."""
    if error := validate_settings(data):
        raise ValidationError(error)

    return Settings(
        operator_account=data["operator_account"],
        alias_group=data["alias_group"],
        canonical_production_instance=data["canonical_production_instance"],
        static_files_path=data["static_files_path"],
        static_excludes=tuple(data["static_excludes"]),
        code_excludes=tuple(data["code_excludes"]),
        drush=data["drush"],
        rsync=data["rsync"],
        work_dir=data["work_dir"],
        lock=LockSettings(**data["lock"]),
    )


def load_settings(path=None, overrides=None):
    """Load settings for a run.

    Args:
        path: An optional path to a YAML file. Keys in the file override
              DEFAULTS; unknown keys are an error.
        overrides: An optional dictionary applied on top of the file, used
                   by tests to inject fixture values.
    Returns:
        A validated Settings object.
    Raises:
        ValidationError: The file or the merged settings are malformed.
    """
    loaded = yaml_load(path) if path else None

    if error := validate_settings_yaml(loaded):
        raise ValidationError(error)

    loaded = toolz.merge(loaded or {}, overrides or {})

    if error := validate_known_keys(DEFAULTS, loaded):
        raise ValidationError(error)

    return settings_from_dict(merge_settings(loaded))
