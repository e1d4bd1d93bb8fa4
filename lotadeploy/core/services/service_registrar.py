"""
Service registrar — systemd units for long-running components.

Registration is a no-op unless the process is elevated (checked on
every call, never assumed). When elevated, the unit file is rendered
with the run's deployment paths, written to the unit directory, and
activated with ``daemon-reload``, ``enable`` and ``restart`` in that
order. Failures are reported, never raised, and never unwind
artifacts that were already installed.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from lotadeploy.core.errors import ServiceRegistrationFailure
from lotadeploy.core.models.component import ComponentSpec, ServiceUnitSpec
from lotadeploy.core.models.pipeline import StepOutcome
from lotadeploy.core.models.settings import DEFAULT_UNIT_DIR
from lotadeploy.core.services.installer import DeploymentLayout

logger = logging.getLogger(__name__)

Runner = Callable[..., subprocess.CompletedProcess]


def is_elevated() -> bool:
    """Whether the effective user can modify system-wide service state."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


@dataclass
class RegistrationOutcome:
    """What happened when registering one component."""

    component: str
    outcome: StepOutcome = StepOutcome.SKIPPED
    unit_path: Path | None = None
    reason: str = ""
    error: ServiceRegistrationFailure | None = None
    commands: list[list[str]] = field(default_factory=list)

    @property
    def registered(self) -> bool:
        return self.outcome is StepOutcome.PASSED

    def to_dict(self) -> dict:
        return {
            "component": self.component,
            "outcome": self.outcome.value,
            "unit_path": str(self.unit_path) if self.unit_path else None,
            "reason": self.reason,
            "error": str(self.error) if self.error else None,
        }


_UNIT_TEMPLATE = """\
[Unit]
Description={description}
After={after}

[Service]
Type=simple
{user_line}WorkingDirectory={working_directory}
{environment_lines}EnvironmentFile={environment_file}
ExecStart={exec_start}
Restart={restart}
RestartSec={restart_sec}

[Install]
WantedBy=multi-user.target
"""


def render_unit(unit: ServiceUnitSpec, layout: DeploymentLayout, env_file: Path | None = None) -> str:
    """Render a systemd unit with the run's resolved paths.

    ``{deploy_dir}`` and ``{env_file}`` placeholders in the unit's
    path fields are substituted; everything else is used verbatim.
    """
    values = {
        "deploy_dir": str(layout.root),
        "env_file": str(env_file or layout.env_file),
    }

    def _resolve(text: str) -> str:
        return text.format(**values)

    environment_lines = "".join(
        f"Environment={key}={value}\n" for key, value in unit.environment.items()
    )
    return _UNIT_TEMPLATE.format(
        description=unit.description or unit.unit_name,
        after=" ".join(unit.after),
        user_line=f"User={unit.user}\n" if unit.user else "",
        working_directory=_resolve(unit.working_directory),
        environment_lines=environment_lines,
        environment_file=_resolve(unit.environment_file_path),
        exec_start=_resolve(unit.exec_start),
        restart=unit.restart_policy,
        restart_sec=unit.restart_sec,
    )


class ServiceRegistrar:
    """Writes and activates systemd units.

    Args:
        unit_dir: Service manager unit directory.
        runner: Callable with ``subprocess.run`` semantics.
        elevated: Elevation probe, called on every registration.
    """

    def __init__(
        self,
        unit_dir: Path = Path(DEFAULT_UNIT_DIR),
        runner: Runner = subprocess.run,
        elevated: Callable[[], bool] = is_elevated,
    ):
        self._unit_dir = unit_dir
        self._run = runner
        self._elevated = elevated

    @property
    def unit_dir(self) -> Path:
        return self._unit_dir

    def register(
        self,
        component: ComponentSpec,
        layout: DeploymentLayout,
        env_file: Path | None = None,
    ) -> RegistrationOutcome:
        """Install and (re)start the component's unit, if allowed."""
        outcome = RegistrationOutcome(component=component.name)
        unit = component.service_unit

        if unit is None:
            outcome.reason = "not a long-running component"
            return outcome

        if not self._elevated():
            outcome.reason = "not running with elevated privileges"
            logger.info("Skipping %s service registration: %s", component.name, outcome.reason)
            return outcome

        logger.info("Setting up %s systemd service...", unit.unit_name)
        unit_path = self._unit_dir / unit.file_name
        try:
            self._unit_dir.mkdir(parents=True, exist_ok=True)
            unit_path.write_text(render_unit(unit, layout, env_file), encoding="utf-8")
        except OSError as e:
            return self._fail(outcome, f"cannot write {unit_path}: {e}")
        outcome.unit_path = unit_path

        for command in (
            ["systemctl", "daemon-reload"],
            ["systemctl", "enable", unit.unit_name],
            ["systemctl", "restart", unit.unit_name],
        ):
            outcome.commands.append(command)
            try:
                r = self._run(command, capture_output=True, text=True, timeout=60)
            except (OSError, subprocess.TimeoutExpired) as e:
                return self._fail(outcome, f"{' '.join(command)}: {e}")
            if r.returncode != 0:
                detail = (r.stderr or "").strip() or f"exit code {r.returncode}"
                return self._fail(outcome, f"{' '.join(command)}: {detail}")

        outcome.outcome = StepOutcome.PASSED
        logger.info("Service %s registered and restarted", unit.unit_name)
        return outcome

    def _fail(self, outcome: RegistrationOutcome, message: str) -> RegistrationOutcome:
        outcome.outcome = StepOutcome.FAILED
        outcome.error = ServiceRegistrationFailure(outcome.component, message)
        outcome.reason = message
        logger.error("Service registration failed for %s: %s", outcome.component, message)
        return outcome
