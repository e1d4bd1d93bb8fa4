"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from lotadeploy.adapters.mock import MockAdapter
from lotadeploy.adapters.registry import AdapterRegistry
from lotadeploy.core.services.components import default_components

ENV_CONTENT = """\
# runtime configuration
REDIS_URL=redis://localhost:6379
export GEMINI_API_KEY="dev-key"
LOG_LEVEL=debug
"""


def make_artifact(workspace: Path, directory: str, name: str, content: bytes = b"\x7fELF fake") -> Path:
    """Drop a fake release binary where cargo would have built it."""
    artifact = workspace / directory / "target" / "release" / name
    artifact.parent.mkdir(parents=True, exist_ok=True)
    artifact.write_bytes(content)
    return artifact


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A lotabots workspace with every component dir, a .env and built binaries."""
    root = tmp_path / "workspace"
    root.mkdir()
    (root / ".env").write_text(ENV_CONTENT)
    for spec in default_components():
        (root / spec.directory).mkdir()
    make_artifact(root, "lotabots-cli", "lotabots-cli")
    make_artifact(root, "lotabots-whatsapp", "lotabots-whatsapp")
    return root


@pytest.fixture
def deploy_root(tmp_path: Path) -> Path:
    """Deployment root path (not created)."""
    return tmp_path / "deploy"


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter(adapter_name="shell")


@pytest.fixture
def mock_registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    """Registry routing every build and test to ``mock_adapter``."""
    registry = AdapterRegistry()
    registry.set_mock_mode(True, mock_adapter)
    return registry


@pytest.fixture
def which_all():
    """PATH lookup that finds every tool."""
    return lambda tool: f"/usr/bin/{tool}"
