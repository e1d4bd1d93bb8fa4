"""
Deploy use case — the full run from options to exit status.

Order of a run:
    settings → toolchain check → environment file → accelerator probe
    and policy → component resolution → deployment layout and config
    → build/test/install per component → service registration
    → audit entry

Configuration, dependency and accelerator-policy errors abort the run
before anything is written under the deployment root. Component
errors are aggregated into the report and only decide the exit code.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Callable

from lotadeploy.adapters.registry import AdapterRegistry
from lotadeploy.core.config.loader import load_environment, load_settings, parse_environment
from lotadeploy.core.engine.executor import (
    BuildContext,
    RunReport,
    execute_pipeline,
    generate_operation_id,
)
from lotadeploy.core.errors import DeployError
from lotadeploy.core.models.capability import CapabilityProfile
from lotadeploy.core.models.environment import DeploymentEnvironment, EnvironmentConfig
from lotadeploy.core.models.pipeline import StepOutcome
from lotadeploy.core.models.settings import DeploySettings
from lotadeploy.core.persistence.audit import AuditEntry, AuditWriter
from lotadeploy.core.services.capability import (
    CapabilitySource,
    NvidiaSmiSource,
    resolve_capability,
)
from lotadeploy.core.services.components import ComponentRegistry, default_registry
from lotadeploy.core.services.installer import (
    DeploymentLayout,
    install_config,
    materialize_layout,
)
from lotadeploy.core.services.service_registrar import ServiceRegistrar
from lotadeploy.core.services.toolchain import check_dependencies, host_summary, tool_version

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    """Result of a deployment run."""

    operation_id: str = ""
    environment: DeploymentEnvironment | None = None
    config: EnvironmentConfig | None = None
    profile: CapabilityProfile | None = None
    layout: DeploymentLayout | None = None
    report: RunReport | None = None
    requested: list[str] = field(default_factory=list)
    unknown_components: list[str] = field(default_factory=list)
    diagnostics: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
    error: str | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> dict:
        result: dict = {"operation_id": self.operation_id, "exit_code": self.exit_code}
        if self.error:
            result["error"] = self.error
            result["error_type"] = self.error_type
            return result

        result["environment"] = self.environment.value if self.environment else None
        result["config_source"] = str(self.config.source) if self.config else None
        result["deploy_dir"] = str(self.layout.root) if self.layout else None
        result["dry_run"] = self.dry_run
        result["requested"] = self.requested
        result["unknown_components"] = self.unknown_components
        if self.profile:
            result["capability"] = self.profile.to_dict()
        if self.report:
            result["report"] = self.report.to_dict()
        if self.diagnostics:
            result["diagnostics"] = self.diagnostics
        return result


def _abort(result: DeployResult, error: DeployError) -> None:
    result.error = str(error)
    result.error_type = type(error).__name__
    logger.error("%s", error)


def run_deploy(
    workspace: Path,
    environment: str | DeploymentEnvironment = DeploymentEnvironment.DEVELOPMENT,
    deploy_dir: Path | None = None,
    components: list[str] | None = None,
    features: str | None = None,
    skip_tests: bool = False,
    verbose: bool = False,
    dry_run: bool = False,
    mock_mode: bool = False,
    settings: DeploySettings | None = None,
    registry: AdapterRegistry | None = None,
    capability_source: CapabilitySource | None = None,
    component_registry: ComponentRegistry | None = None,
    registrar: ServiceRegistrar | None = None,
    which: Callable[[str], str | None] = shutil.which,
    machine: str | None = None,
    audit: bool = True,
) -> DeployResult:
    """Deploy the selected components of a workspace.

    Args:
        workspace: Workspace root (holds ``.env`` and component dirs).
        environment: ``development`` or ``production``.
        deploy_dir: Deployment root. Relative paths resolve against
            the workspace. Default from settings.
        components: Component names in execution order. None = settings
            list, or every registered component.
        features: Build-time feature selector. Default from settings.
        skip_tests: Skip every test step.
        verbose: Verbose builds and diagnostic collection.
        dry_run: Plan and validate only; nothing is written under the
            deployment root.
        mock_mode: Route builds and tests to the mock adapter, skip the
            toolchain check and never touch the service manager.
        settings: Pre-loaded settings (default: ``lotadeploy.yml``).
        registry: Pre-configured adapter registry.
        capability_source: Accelerator source (default: nvidia-smi).
        component_registry: Known components (default: lotabots workspace).
        registrar: Service registrar (default: systemd unit dir).
        which: PATH lookup used by the toolchain check.
        machine: CPU architecture override for build-flag selection.
        audit: Append an entry to the workspace audit ledger.

    Returns:
        DeployResult. Never raises for expected failures.
    """
    workspace = workspace.resolve()
    result = DeployResult(operation_id=generate_operation_id(), dry_run=dry_run)

    try:
        env = parse_environment(environment)
        result.environment = env
        logger.info("Starting deployment in %s mode...", env.value)

        if settings is None:
            settings = load_settings(workspace)

        if not mock_mode:
            check_dependencies(settings.required_tools, which=which)

        config = load_environment(workspace, env)
        result.config = config

        if capability_source is None:
            capability_source = NvidiaSmiSource()
        profile = resolve_capability(capability_source, env, machine)
        result.profile = profile
    except DeployError as e:
        _abort(result, e)
        _finish(result, workspace, audit)
        return result

    # ── Resolve components ───────────────────────────────────────
    if component_registry is None:
        component_registry = default_registry(settings.service_user)
    requested = components if components is not None else (settings.components or component_registry.names())
    result.requested = list(requested)
    result.unknown_components = component_registry.unknown(requested)
    specs = component_registry.resolve(requested)

    # ── Deployment layout ────────────────────────────────────────
    root = Path(deploy_dir) if deploy_dir is not None else Path(settings.deploy_dir)
    if not root.is_absolute():
        root = workspace / root

    if dry_run:
        layout = DeploymentLayout(root=root)
    else:
        try:
            layout = materialize_layout(root)
            install_config(layout, config)
        except DeployError as e:
            _abort(result, e)
            _finish(result, workspace, audit)
            return result
        except OSError as e:
            result.error = f"Cannot prepare deployment directory {root}: {e}"
            result.error_type = "InstallFailure"
            logger.error("%s", result.error)
            _finish(result, workspace, audit)
            return result
    result.layout = layout

    # ── Build, test, install ─────────────────────────────────────
    if registry is None:
        registry = _default_registry(mock_mode)

    context = BuildContext(
        workspace=workspace,
        config=config,
        profile=profile,
        features=features if features is not None else settings.features,
        verbose=verbose,
        skip_tests=skip_tests,
        dry_run=dry_run,
        operation_id=result.operation_id,
    )
    report = execute_pipeline(specs, context, registry, layout)
    result.report = report

    # ── Service registration ─────────────────────────────────────
    if registrar is None:
        if mock_mode:
            registrar = ServiceRegistrar(unit_dir=Path(settings.unit_dir), elevated=lambda: False)
        else:
            registrar = ServiceRegistrar(unit_dir=Path(settings.unit_dir))
    for spec, pipeline in zip(specs, report.results):
        if spec.long_running and pipeline.install is StepOutcome.PASSED:
            pipeline.registration = registrar.register(spec, layout)

    # ── Footer ───────────────────────────────────────────────────
    logger.info("Deployment complete!")
    logger.info("Deployed components: %s", " ".join(report.names()) or "(none)")
    logger.info("Deployment directory: %s", layout.root)
    if verbose:
        result.diagnostics = _collect_diagnostics(profile, mock_mode)
        for key, value in result.diagnostics.items():
            logger.debug("%s: %s", key, value)

    _finish(result, workspace, audit)
    return result


def _default_registry(mock_mode: bool) -> AdapterRegistry:
    from lotadeploy.adapters.shell.command import ShellCommandAdapter

    registry = AdapterRegistry(mock_mode=mock_mode)
    registry.register(ShellCommandAdapter())
    return registry


def _collect_diagnostics(profile: CapabilityProfile, mock_mode: bool) -> dict[str, str]:
    diagnostics = {
        "timestamp": datetime.now(UTC).isoformat(),
        "rust_version": "mock" if mock_mode else tool_version("rustc"),
        "os": host_summary(),
        "capability": profile.status.value,
        "rustflags": profile.rustflags,
    }
    if profile.driver_version:
        diagnostics["driver_version"] = profile.driver_version
    if profile.library_version:
        diagnostics["library_version"] = profile.library_version
    if profile.accelerator_version:
        diagnostics["cuda_version"] = profile.accelerator_version
    if profile.raw_output:
        diagnostics["probe_output"] = profile.raw_output
    return diagnostics


def _finish(result: DeployResult, workspace: Path, audit: bool) -> None:
    """Append the run to the workspace audit ledger."""
    if not audit:
        return

    report = result.report
    if result.error is not None:
        status = "aborted"
    elif report is not None:
        status = report.status
    else:
        status = "aborted"

    errors = [result.error] if result.error else []
    if report is not None:
        errors.extend(str(e) for r in report.results for e in r.errors)

    entry = AuditEntry(
        operation_id=result.operation_id,
        environment=result.environment.value if result.environment else "",
        deploy_dir=str(result.layout.root) if result.layout else "",
        components=report.names() if report else [],
        unknown_components=result.unknown_components,
        status=status,
        components_succeeded=report.succeeded if report else 0,
        components_failed=report.failed if report else 0,
        capability=result.profile.status.value if result.profile else "",
        dry_run=result.dry_run,
        errors=errors,
    )
    AuditWriter(workspace=workspace).write(entry)
