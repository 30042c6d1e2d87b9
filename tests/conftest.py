import pytest

from promote.config import load_settings


@pytest.fixture
def settings(tmp_path):
    """Settings with the fixed conventions of the deployment, and lock and
    work directories inside the test's temporary directory."""
    return load_settings(
        overrides={
            "work_dir": str(tmp_path),
            "lock": {"dir": str(tmp_path.joinpath("locks"))},
        }
    )
