# This file contains validation functions to help provide useful errors to
# the operator in case a malformed settings file is passed. A bad value here
# (a relative path, a typo in a key) would otherwise only show up halfway
# through a destructive run.
#
# Every validation function returns None when its input passes, and a
# "validation failure dictionary" when it does not. The caller raises the
# first failure it finds as a ValidationError.
from pprint import pformat
from pathlib import PurePosixPath

import toolz

from .utils import find_missing


class ValidationError(Exception):
    """A custom error class that is initialized with a validation failure
    dictionary. Validation failure dictionaries are returned by a validation
    function when a input does not pass validation. If an input passes,
    then validation functions return None.

    The only required key in the validation failure dictionary is 'message',
    which will be come the error message for the exception raised. Other keys
    will be printed as a dictionary as a part of the error message."""

    def __init__(self, data):
        chart = ""
        message = data.get("message", "Validation error")
        if data:
            for key, value in toolz.dissoc(data, "message").items():
                chart = f"{chart}\n    {key} = {pformat(value)}"
        super().__init__(f"{message}{chart}")


STRING_KEYS = ("operator_account", "static_files_path", "drush", "rsync", "work_dir")
LIST_KEYS = ("static_excludes", "code_excludes")
ABSOLUTE_PATH_KEYS = ("static_files_path", "work_dir")


def validate_settings_yaml(loaded):
    if loaded is not None and not isinstance(loaded, dict):
        return {
            "message": "settings file must contain a mapping",
            "found": loaded,
        }


def validate_known_keys(defaults, loaded):
    for unknown in find_missing(set(defaults.keys()), loaded.keys()):
        return {
            "message": "unknown key in settings file",
            "found": unknown,
            "valid": sorted(defaults.keys()),
        }

    lock = loaded.get("lock")
    if lock is None:
        return
    if not isinstance(lock, dict):
        return {"message": "'lock' must be a mapping", "found": lock}
    for unknown in find_missing(set(defaults["lock"].keys()), lock.keys()):
        return {
            "message": "unknown key in 'lock' section",
            "found": unknown,
            "valid": sorted(defaults["lock"].keys()),
        }


def validate_strings(settings):
    for key in STRING_KEYS:
        value = settings[key]
        if not isinstance(value, str) or not value:
            return {
                "message": "setting must be a non-empty string",
                "path": key,
                "found": value,
            }

    group = settings["alias_group"]
    if group is not None and (not isinstance(group, str) or "@" in group):
        return {
            "message": "alias_group must be a name without '@'",
            "found": group,
        }


def validate_lists(settings):
    for key in LIST_KEYS:
        value = settings[key]
        if not isinstance(value, (list, tuple)):
            return {
                "message": "setting must be a list of strings",
                "path": key,
                "found": value,
            }
        for invalid in (v for v in value if not isinstance(v, str) or not v):
            return {
                "message": "exclude patterns must be non-empty strings",
                "path": key,
                "found": invalid,
            }


def validate_numbers(settings):
    instance = settings["canonical_production_instance"]
    if isinstance(instance, bool) or not isinstance(instance, int) or instance < 1:
        return {
            "message": "canonical_production_instance must be a positive integer",
            "found": instance,
        }

    expire = settings["lock"]["expire_seconds"]
    if isinstance(expire, bool) or not isinstance(expire, int) or expire < 1:
        return {
            "message": "lock.expire_seconds must be a positive integer",
            "found": expire,
        }


def validate_paths(settings):
    for key in ABSOLUTE_PATH_KEYS:
        if not PurePosixPath(settings[key]).is_absolute():
            return {
                "message": "path setting must be absolute",
                "path": key,
                "found": settings[key],
            }

    lock_dir = settings["lock"]["dir"]
    if lock_dir is not None and (
        not isinstance(lock_dir, str) or not PurePosixPath(lock_dir).is_absolute()
    ):
        return {
            "message": "lock.dir must be an absolute path",
            "found": lock_dir,
        }

    redis_url = settings["lock"]["redis_url"]
    if redis_url is not None and not str(redis_url).startswith(("redis://", "rediss://")):
        return {
            "message": "lock.redis_url must be a redis:// or rediss:// url",
            "found": redis_url,
        }


def validate_settings(settings):
    errors = [
        validate_strings(settings),
        validate_lists(settings),
        validate_numbers(settings),
    ]
    for error in (e for e in errors if e):
        return error
    return validate_paths(settings)
