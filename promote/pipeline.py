# Plumbing shared by the content and code pipelines: the bundle of external
# collaborators a run works through, the operator check, and step reporting.
import getpass
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from .errors import PermissionDenied, PromotionError, RegistryError, StepFailed, ToolError
from .logs import promote_logger
from .registry import DrushRegistry
from .shell import Runner
from .topology import enumerate_destinations, resolve_content_source, resolve_destination_tier
from .tools import DrushDatabase, DrushMaintenance, Mirror
from . import output


@dataclass
class Toolkit:
    """Everything a pipeline talks to. Tests build one out of fakes."""

    registry: Any
    mirror: Any
    database: Any
    maintenance: Any
    whoami: Callable[[], str] = getpass.getuser
    # Passed to promote.lock.run_lock; None selects the configured backend.
    lock_conn: Optional[Any] = field(default=None)


def build_toolkit(settings, dry_run=False) -> Toolkit:
    runner = Runner(settings.work_dir, dry_run=dry_run)
    return Toolkit(
        registry=DrushRegistry(runner, settings),
        mirror=Mirror(runner, settings),
        database=DrushDatabase(runner, settings),
        maintenance=DrushMaintenance(runner, settings),
    )


def ensure_operator(settings, whoami):
    """Refuse to run as anyone but the operator account.

    Raises:
        PermissionDenied: the current account is not settings.operator_account.
    """
    user = whoami()
    if user != settings.operator_account:
        raise PermissionDenied(
            f"This must be run as '{settings.operator_account}', not '{user}'."
        )


def report_topology(toolkit, settings):
    """Resolve where code and content would go from here, without changing
    anything. Failures are reported in the result instead of raised, so the
    whole picture is shown at once.

    Returns:
        A dictionary with the keys "local", "code_destinations" and
        "content_source". Each value is either the resolved result or a
        string starting with "unavailable:".
    """
    report = {}
    try:
        local = toolkit.registry.lookup_local()
    except RegistryError as e:
        unavailable = f"unavailable: {e}"
        return {
            "local": unavailable,
            "code_destinations": unavailable,
            "content_source": unavailable,
        }
    report["local"] = local

    try:
        tier = resolve_destination_tier(local)
        destinations = enumerate_destinations(tier, toolkit.registry)
        report["code_destinations"] = [str(d) for d in destinations]
    except PromotionError as e:
        report["code_destinations"] = f"unavailable: {e}"

    try:
        report["content_source"] = str(resolve_content_source(local, toolkit.registry, settings))
    except PromotionError as e:
        report["content_source"] = f"unavailable: {e}"

    return report


@contextmanager
def step(name, target, hint=None):
    """Report a pipeline step and turn a tool failure inside it into a
    StepFailed naming the step and the environment it acted on.

    Args:
        name: The step name shown to the operator.
        target: The environment the step acts on.
        hint: Shown with the error if the step fails, to describe the state
              the failure leaves the target in.
    """
    output.title(f"{name}: {target}")
    try:
        yield
    except ToolError as e:
        promote_logger.error(f"{name} failed.", extra={"label": str(target)})
        raise StepFailed(name, target, str(e), hint) from e
