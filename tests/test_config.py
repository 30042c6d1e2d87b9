#!/usr/bin/env python
import pytest

from promote.config import (
    CODE_EXCLUDES,
    DEFAULTS,
    STATIC_EXCLUDES,
    load_settings,
    merge_settings,
)
from promote.utils import temporary_fs
from promote.validate import ValidationError


def test_defaults():
    settings = load_settings()
    assert settings.operator_account == "deploy"
    assert settings.canonical_production_instance == 1
    assert settings.static_files_path == "/var/www/shared/files"
    assert settings.static_excludes == tuple(STATIC_EXCLUDES)
    assert settings.code_excludes == (".git", ".gitignore", "robots.txt")
    assert settings.code_excludes == tuple(CODE_EXCLUDES)
    assert settings.alias_group is None
    assert settings.lock.redis_url is None


def test_yaml_overrides_defaults():
    fs = {
        "promote.yml": "\n".join(
            [
                "alias_group: mysite",
                "drush: /usr/local/bin/drush",
                "lock:",
                "  expire_seconds: 600",
            ]
        )
    }
    with temporary_fs(fs) as tempdir:
        settings = load_settings(tempdir.joinpath("promote.yml"))

    assert settings.alias_group == "mysite"
    assert settings.drush == "/usr/local/bin/drush"
    assert settings.lock.expire_seconds == 600
    assert settings.lock.dir == DEFAULTS["lock"]["dir"], "other lock keys keep their default"
    assert settings.rsync == "rsync"


def test_empty_yaml_is_defaults():
    with temporary_fs({"promote.yml": ""}) as tempdir:
        assert load_settings(tempdir.joinpath("promote.yml")) == load_settings()


def test_merge_settings_does_not_mutate_defaults():
    merged = merge_settings({"lock": {"redis_url": "redis://cache:6379"}})
    assert merged["lock"]["redis_url"] == "redis://cache:6379"
    assert DEFAULTS["lock"]["redis_url"] is None


@pytest.mark.parametrize(
    "contents,fragment",
    [
        ("- drush\n- rsync\n", "mapping"),
        ("drsuh: drush\n", "unknown key"),
        ("lock:\n  ttl: 5\n", "unknown key in 'lock'"),
        ("lock: 5\n", "'lock' must be a mapping"),
        ("work_dir: tmp\n", "absolute"),
        ("static_files_path: files\n", "absolute"),
        ("canonical_production_instance: 0\n", "positive integer"),
        ("canonical_production_instance: true\n", "positive integer"),
        ("lock:\n  expire_seconds: -1\n", "positive integer"),
        ("lock:\n  redis_url: http://cache\n", "redis://"),
        ("lock:\n  dir: locks\n", "absolute"),
        ("static_excludes: css/\n", "list of strings"),
        ("code_excludes: ['.git', '']\n", "non-empty strings"),
        ("operator_account: ''\n", "non-empty string"),
        ("alias_group: '@mysite'\n", "alias_group"),
    ],
)
def test_invalid_settings(contents, fragment):
    with temporary_fs({"promote.yml": contents}) as tempdir:
        with pytest.raises(ValidationError) as excinfo:
            load_settings(tempdir.joinpath("promote.yml"))
    assert fragment in str(excinfo.value)


def test_validation_error_lists_context():
    with pytest.raises(ValidationError) as excinfo:
        load_settings(overrides={"rsnyc": "rsync"})
    message = str(excinfo.value)
    assert message.startswith("unknown key in settings file")
    assert "found = 'rsnyc'" in message
