#!/usr/bin/env python
import pytest

from promote.errors import PermissionDenied, StepFailed, ToolError
from promote.pipeline import build_toolkit, ensure_operator, report_topology, step
from promote.registry import DrushRegistry
from promote.shell import Runner
from tests.fakes import FakeRegistry, make_toolkit


def test_build_toolkit_shares_one_runner(settings):
    toolkit = build_toolkit(settings, dry_run=True)
    assert isinstance(toolkit.registry, DrushRegistry)
    runners = {id(toolkit.registry.runner), id(toolkit.mirror.runner), id(toolkit.database.runner)}
    assert len(runners) == 1
    assert isinstance(toolkit.maintenance.runner, Runner)
    assert toolkit.maintenance.runner.dry_run
    assert toolkit.maintenance.runner.work_dir == settings.work_dir


def test_ensure_operator(settings):
    ensure_operator(settings, lambda: "deploy")
    with pytest.raises(PermissionDenied) as excinfo:
        ensure_operator(settings, lambda: "alice")
    assert "'deploy'" in str(excinfo.value)
    assert excinfo.value.exit_code == 2


def test_report_topology_from_test(settings):
    assert report_topology(make_toolkit(), settings) == {
        "local": "test1",
        "code_destinations": ["stage3", "stage2", "stage1"],
        "content_source": "prod1",
    }


def test_report_topology_from_prod(settings):
    report = report_topology(make_toolkit(FakeRegistry(local="prod1")), settings)
    assert report["local"] == "prod1"
    assert report["code_destinations"].startswith("unavailable:")
    assert report["content_source"].startswith("unavailable:")


def test_report_topology_without_local_alias(settings):
    report = report_topology(make_toolkit(FakeRegistry(fail={"lookup_local"})), settings)
    assert all(value.startswith("unavailable:") for value in report.values())


def test_step_wraps_tool_errors():
    with pytest.raises(StepFailed) as excinfo:
        with step("Cache clear", "stage1", hint="Clear it by hand."):
            raise ToolError("drush exited with status 1", 1)

    err = excinfo.value
    assert (err.step, err.target) == ("Cache clear", "stage1")
    assert str(err).startswith("Step 'Cache clear' failed on stage1:")
    assert str(err).endswith("Clear it by hand.")
    assert err.exit_code == 1


def test_step_leaves_other_errors_alone():
    with pytest.raises(KeyError):
        with step("Cache clear", "stage1"):
            raise KeyError("x")
