"""
Shared test fixtures and configuration.
"""

from collections.abc import Iterator
from pathlib import Path

import pytest

from wizardplane.core.config.loader import WizardSettings
from wizardplane.core.control_plane import ControlPlane
from wizardplane.core.models.step import Step
from wizardplane.core.services import config_catalog, workflow_sync


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def home(tmp_path: Path) -> Path:
    """An empty home directory for shell startup files."""
    d = tmp_path / "home"
    d.mkdir()
    return d


@pytest.fixture
def environ() -> dict[str, str]:
    """Stand-in for os.environ."""
    return {}


@pytest.fixture
def reload_calls() -> list[Path]:
    return []


@pytest.fixture
def control_plane(home: Path, environ: dict[str, str], reload_calls: list[Path]) -> Iterator[ControlPlane]:
    """A session over the packaged catalogs, mock adapters and a temp home."""
    settings = WizardSettings(home=home, busy_timeout=None, mock_adapters=True)
    cp = ControlPlane(settings, environ=environ, reloader=reload_calls.append)
    yield cp
    cp.adapters.shutdown(wait=True)


@pytest.fixture
def make_steps():
    """Build steps numbered by position; each entry is Step kwargs minus order and title."""

    def _make(*specs: dict) -> list[Step]:
        return [
            Step(order=i, title=spec["id"].title(), **spec)
            for i, spec in enumerate(specs, start=1)
        ]

    return _make


@pytest.fixture(autouse=True)
def _login_shell(monkeypatch):
    """Pin the login shell so the default env target is .zshrc."""
    monkeypatch.setenv("SHELL", "/bin/zsh")


@pytest.fixture
def restore_snapshots():
    """Put the process-wide snapshots back after a test swaps them."""
    catalog = config_catalog._catalog
    workflow_map = workflow_sync._workflow_map
    yield
    config_catalog._catalog = catalog
    workflow_sync._workflow_map = workflow_map
