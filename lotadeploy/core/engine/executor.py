"""
Pipeline executor — build, test and install each component in order.

Flow per component:
    pending → building → (testing) → installing → succeeded | failed

Components run strictly one after another in the resolved order;
install steps of different components may share destination paths,
so the order is significant. A failed build stops that component only
and the run moves on to the next one. Test failure marks the
component failed but does not block its install: tests are
diagnostic, the build is the gate. Nothing is retried.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path

from lotadeploy.adapters.registry import AdapterRegistry
from lotadeploy.core.errors import BuildFailure, ComponentError, InstallFailure, TestFailure
from lotadeploy.core.models.action import Action, Receipt
from lotadeploy.core.models.capability import CapabilityProfile
from lotadeploy.core.models.component import ComponentSpec
from lotadeploy.core.models.environment import EnvironmentConfig
from lotadeploy.core.models.pipeline import ComponentState, StepOutcome
from lotadeploy.core.services.installer import DeploymentLayout, install_targets
from lotadeploy.core.services.service_registrar import RegistrationOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildContext:
    """Immutable inputs shared by every component in a run.

    Build flags reach the toolchain only through the per-call
    environment built from this context.
    """

    workspace: Path
    config: EnvironmentConfig
    profile: CapabilityProfile
    features: str = ""
    verbose: bool = False
    skip_tests: bool = False
    dry_run: bool = False
    operation_id: str = ""

    @property
    def environment(self) -> str:
        return self.config.environment.value

    def command_env(self) -> dict[str, str]:
        """Environment overlay for build and test subprocesses."""
        env = dict(self.config.values)
        env["RUSTFLAGS"] = self.profile.rustflags
        return env


@dataclass
class PipelineResult:
    """Outcome of one component's pipeline."""

    name: str
    state: ComponentState = ComponentState.PENDING
    build: StepOutcome = StepOutcome.PENDING
    test: StepOutcome = StepOutcome.PENDING
    install: StepOutcome = StepOutcome.PENDING
    receipts: list[Receipt] = field(default_factory=list)
    errors: list[ComponentError] = field(default_factory=list)
    installed: list[Path] = field(default_factory=list)
    registration: RegistrationOutcome | None = None  # set by the driver

    @property
    def succeeded(self) -> bool:
        return self.state is ComponentState.SUCCEEDED

    @property
    def overall(self) -> str:
        return "success" if self.succeeded else "failure"

    def advance(self, state: ComponentState) -> None:
        """Move to the next lifecycle state. Terminal states are final."""
        if self.state.terminal:
            raise ValueError(f"{self.name}: cannot leave terminal state {self.state.value}")
        logger.debug("%s: %s → %s", self.name, self.state.value, state.value)
        self.state = state

    def to_dict(self) -> dict:
        data = {
            "name": self.name,
            "state": self.state.value,
            "overall": self.overall,
            "build": self.build.value,
            "test": self.test.value,
            "install": self.install.value,
            "installed": [str(p) for p in self.installed],
            "errors": [{"type": type(e).__name__, "message": e.message} for e in self.errors],
        }
        if self.registration is not None:
            data["registration"] = self.registration.to_dict()
        return data


@dataclass
class RunReport:
    """Per-component results of a run, in execution order."""

    operation_id: str = ""
    results: list[PipelineResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.succeeded)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def ok(self) -> bool:
        return self.failed == 0

    @property
    def status(self) -> str:
        if self.failed == 0:
            return "ok"
        if self.succeeded > 0:
            return "partial"
        return "failed"

    def get(self, name: str) -> PipelineResult | None:
        for result in self.results:
            if result.name == name:
                return result
        return None

    def names(self) -> list[str]:
        return [r.name for r in self.results]

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "status": self.status,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "components": [r.to_dict() for r in self.results],
        }


# ── Command rendering ───────────────────────────────────────────


def render_command(
    template: tuple[str, ...],
    features: str = "",
    verbose: bool = False,
) -> list[str]:
    """Turn a command template into argv.

    ``{features}`` is substituted; with no features the
    ``--features {features}`` pair is dropped entirely. Verbose mode
    appends ``--verbose``.
    """
    argv: list[str] = []
    skip_next = False
    for i, arg in enumerate(template):
        if skip_next:
            skip_next = False
            continue
        if not features:
            if arg == "--features" and i + 1 < len(template) and "{features}" in template[i + 1]:
                skip_next = True
                continue
            if "{features}" in arg:
                continue
        argv.append(arg.replace("{features}", features))
    if verbose:
        argv.append("--verbose")
    return argv


def _action(component: ComponentSpec, step: str, argv: list[str], context: BuildContext) -> Action:
    return Action(
        id=f"{context.operation_id}:{component.name}:{step}",
        step=step,
        component=component.name,
        argv=argv,
    )


def _dispatch(
    component: ComponentSpec,
    step: str,
    argv: list[str],
    context: BuildContext,
    registry: AdapterRegistry,
) -> Receipt:
    logger.debug("%s %s: %s", component.name, step, " ".join(argv))
    return registry.execute_action(
        action=_action(component, step, argv, context),
        workspace=str(context.workspace),
        component_dir=component.directory,
        env=context.command_env(),
        dry_run=context.dry_run,
    )


def _outcome(receipt: Receipt) -> StepOutcome:
    if receipt.ok:
        return StepOutcome.PASSED
    if receipt.failed:
        return StepOutcome.FAILED
    return StepOutcome.SKIPPED


# ── Execution ───────────────────────────────────────────────────


def execute_component(
    component: ComponentSpec,
    context: BuildContext,
    registry: AdapterRegistry,
    layout: DeploymentLayout,
) -> PipelineResult:
    """Run one component's build → test → install pipeline."""
    result = PipelineResult(name=component.name)
    logger.info("Deploying %s component...", component.name)

    # ── Build ────────────────────────────────────────────────────
    result.advance(ComponentState.BUILDING)
    features = context.features if component.uses_features else ""
    build_argv = render_command(component.build_command, features, context.verbose)
    receipt = _dispatch(component, "build", build_argv, context, registry)
    result.receipts.append(receipt)
    result.build = _outcome(receipt)

    if receipt.failed:
        result.errors.append(BuildFailure(component.name, receipt.error or "build failed"))
        result.test = StepOutcome.SKIPPED
        result.install = StepOutcome.SKIPPED
        result.advance(ComponentState.FAILED)
        logger.error("Build failed for %s: %s", component.name, receipt.error)
        return result

    # ── Test ─────────────────────────────────────────────────────
    if context.skip_tests:
        result.test = StepOutcome.SKIPPED
    else:
        result.advance(ComponentState.TESTING)
        logger.info("Running %s tests...", component.name)
        test_argv = render_command(component.test_command, features)
        receipt = _dispatch(component, "test", test_argv, context, registry)
        result.receipts.append(receipt)
        result.test = _outcome(receipt)
        if receipt.failed:
            result.errors.append(TestFailure(component.name, receipt.error or "tests failed"))
            logger.error("Tests failed for %s: %s", component.name, receipt.error)

    # ── Install ──────────────────────────────────────────────────
    result.advance(ComponentState.INSTALLING)
    if context.dry_run or not component.install_targets:
        result.install = StepOutcome.SKIPPED
    else:
        try:
            result.installed = install_targets(component, layout, context.workspace)
            result.install = StepOutcome.PASSED
        except InstallFailure as e:
            result.errors.append(e)
            result.install = StepOutcome.FAILED
            logger.error("Install failed for %s: %s", component.name, e.message)

    result.advance(ComponentState.FAILED if result.errors else ComponentState.SUCCEEDED)
    return result


def execute_pipeline(
    components: list[ComponentSpec],
    context: BuildContext,
    registry: AdapterRegistry,
    layout: DeploymentLayout,
) -> RunReport:
    """Run every component's pipeline, strictly in the given order."""
    report = RunReport(operation_id=context.operation_id)
    logger.info("Running %d component(s) for %s", len(components), context.environment)

    for component in components:
        result = execute_component(component, context, registry, layout)
        report.results.append(result)

        status_marker = "✓" if result.succeeded else "✗"
        logger.info(
            "%s %s → build=%s test=%s install=%s",
            status_marker,
            component.name,
            result.build.value,
            result.test.value,
            result.install.value,
        )

    return report


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"
