"""
Artifact installer — deployment layout, configuration and binaries.

Everything here is idempotent: directories are created with
``exist_ok``, files are overwritten with byte-identical copies, and
nothing already in the deployment root is ever removed.
"""

from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass
from pathlib import Path

from lotadeploy.core.errors import InstallFailure
from lotadeploy.core.models.component import ComponentSpec
from lotadeploy.core.models.environment import EnvironmentConfig

logger = logging.getLogger(__name__)

_EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH


@dataclass(frozen=True)
class DeploymentLayout:
    """The deployment directory tree."""

    root: Path

    @property
    def bin_dir(self) -> Path:
        return self.root / "bin"

    @property
    def config_dir(self) -> Path:
        return self.root / "config"

    @property
    def logs_dir(self) -> Path:
        return self.root / "logs"

    @property
    def env_file(self) -> Path:
        """Deployed environment file referenced by service units."""
        return self.config_dir / ".env"

    def directories(self) -> list[Path]:
        return [self.root, self.bin_dir, self.config_dir, self.logs_dir]


def materialize_layout(root: Path) -> DeploymentLayout:
    """Create ``bin/``, ``config/`` and ``logs/`` under root.

    Succeeds whether or not any of them already exist.
    """
    layout = DeploymentLayout(root=root)
    logger.info("Creating deployment directories under %s", root)
    for directory in layout.directories():
        directory.mkdir(parents=True, exist_ok=True)
    return layout


def install_config(layout: DeploymentLayout, config: EnvironmentConfig) -> Path:
    """Copy the environment file the run was loaded from to ``config/.env``."""
    source = config.source
    logger.info("Copying configuration %s → %s", source.name, layout.env_file)
    layout.config_dir.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, layout.env_file)
    return layout.env_file


def make_executable(path: Path) -> None:
    """Add the execute bits without touching any other permission bit."""
    mode = path.stat().st_mode
    if mode & _EXEC_BITS != _EXEC_BITS:
        path.chmod(mode | _EXEC_BITS)


def install_targets(
    component: ComponentSpec,
    layout: DeploymentLayout,
    workspace: Path,
) -> list[Path]:
    """Copy a component's artifacts into the deployment root.

    Returns:
        Installed destination paths, in declaration order.

    Raises:
        InstallFailure: On a missing artifact or any copy error, or if
            an executable target does not end up executable.
    """
    installed: list[Path] = []
    component_root = workspace / component.directory

    for target in component.install_targets:
        source = component_root / target.source
        destination = layout.root / target.destination

        if not source.is_file():
            raise InstallFailure(component.name, f"artifact not found: {source}")

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source, destination)
            if target.executable:
                make_executable(destination)
        except OSError as e:
            raise InstallFailure(component.name, f"cannot install {source} → {destination}: {e}") from e

        if target.executable and not os.access(destination, os.X_OK):
            raise InstallFailure(component.name, f"{destination} is not executable after install")

        logger.debug("Installed %s → %s", source, destination)
        installed.append(destination)

    return installed
