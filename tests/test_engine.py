"""
Tests for the pipeline executor — command rendering, step gating and order.
"""

from pathlib import Path

import pytest

from lotadeploy.adapters.mock import MockAdapter
from lotadeploy.adapters.registry import AdapterRegistry
from lotadeploy.core.engine.executor import (
    BuildContext,
    PipelineResult,
    execute_component,
    execute_pipeline,
    generate_operation_id,
    render_command,
)
from lotadeploy.core.errors import BuildFailure, InstallFailure, TestFailure
from lotadeploy.core.models.capability import CapabilityProfile, CapabilityStatus
from lotadeploy.core.models.environment import DeploymentEnvironment, EnvironmentConfig
from lotadeploy.core.models.pipeline import ComponentState, StepOutcome
from lotadeploy.core.services.components import default_registry
from lotadeploy.core.services.installer import DeploymentLayout, materialize_layout


def _context(workspace: Path, **kwargs) -> BuildContext:
    config = EnvironmentConfig(
        environment=DeploymentEnvironment.DEVELOPMENT,
        source=workspace / ".env",
        values={"REDIS_URL": "redis://localhost:6379"},
    )
    profile = CapabilityProfile(
        status=CapabilityStatus.ABSENT,
        build_flags=("-C target-cpu=native",),
    )
    defaults = {"features": "gemini", "operation_id": "op-test"}
    defaults.update(kwargs)
    return BuildContext(workspace=workspace, config=config, profile=profile, **defaults)


# ── Command rendering ────────────────────────────────────────────────


class TestRenderCommand:
    def test_features_substituted(self):
        argv = render_command(("cargo", "build", "--release", "--features", "{features}"), "gemini")
        assert argv == ["cargo", "build", "--release", "--features", "gemini"]

    def test_empty_features_drop_the_pair(self):
        argv = render_command(("cargo", "build", "--release", "--features", "{features}"), "")
        assert argv == ["cargo", "build", "--release"]

    def test_verbose_appended(self):
        assert render_command(("cargo", "build"), verbose=True) == ["cargo", "build", "--verbose"]

    def test_template_without_placeholder(self):
        assert render_command(("cargo", "test", "--release"), "gemini") == ["cargo", "test", "--release"]


# ── Context ──────────────────────────────────────────────────────────


class TestBuildContext:
    def test_command_env_carries_flags_and_config(self, tmp_path: Path):
        env = _context(tmp_path).command_env()
        assert env["RUSTFLAGS"] == "-C target-cpu=native"
        assert env["REDIS_URL"] == "redis://localhost:6379"

    def test_immutable(self, tmp_path: Path):
        context = _context(tmp_path)
        with pytest.raises(AttributeError):
            context.features = "other"  # type: ignore[misc]


class TestPipelineResult:
    def test_terminal_state_is_final(self):
        result = PipelineResult(name="core")
        result.advance(ComponentState.BUILDING)
        result.advance(ComponentState.FAILED)
        with pytest.raises(ValueError):
            result.advance(ComponentState.INSTALLING)


# ── Component execution ──────────────────────────────────────────────


class TestExecuteComponent:
    def test_happy_path_installs(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        layout = materialize_layout(deploy_root)
        spec = default_registry().get("cli")
        result = execute_component(spec, _context(workspace), mock_registry, layout)

        assert result.state is ComponentState.SUCCEEDED
        assert (result.build, result.test, result.install) == (
            StepOutcome.PASSED, StepOutcome.PASSED, StepOutcome.PASSED,
        )
        assert result.installed == [deploy_root / "bin" / "lotabots-cli"]
        assert mock_adapter.calls() == ["cli:build", "cli:test"]

    def test_build_argv_and_env(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        spec = default_registry().get("cli")
        execute_component(spec, _context(workspace, verbose=True), mock_registry, DeploymentLayout(deploy_root))

        build, test = mock_adapter.call_log
        assert build.action.argv == [
            "cargo", "build", "--release", "--features", "gemini", "--verbose",
        ]
        assert test.action.argv == ["cargo", "test", "--release", "--features", "gemini"]
        assert build.env["RUSTFLAGS"] == "-C target-cpu=native"
        assert build.component_dir == "lotabots-cli"

    def test_features_ignored_for_other_components(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        spec = default_registry().get("core")
        execute_component(spec, _context(workspace), mock_registry, DeploymentLayout(deploy_root))
        assert mock_adapter.call_log[0].action.argv == ["cargo", "build", "--release"]

    def test_build_failure_skips_rest(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        mock_adapter.set_failure("cli:build", error="error: linking with `cc` failed")
        layout = materialize_layout(deploy_root)
        result = execute_component(default_registry().get("cli"), _context(workspace), mock_registry, layout)

        assert result.state is ComponentState.FAILED
        assert result.test is StepOutcome.SKIPPED
        assert result.install is StepOutcome.SKIPPED
        assert isinstance(result.errors[0], BuildFailure)
        assert mock_adapter.calls() == ["cli:build"]
        assert not (deploy_root / "bin" / "lotabots-cli").exists()

    def test_test_failure_still_installs(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        mock_adapter.set_failure("cli:test", error="test result: FAILED")
        layout = materialize_layout(deploy_root)
        result = execute_component(default_registry().get("cli"), _context(workspace), mock_registry, layout)

        assert result.state is ComponentState.FAILED
        assert result.overall == "failure"
        assert result.test is StepOutcome.FAILED
        assert result.install is StepOutcome.PASSED
        assert isinstance(result.errors[0], TestFailure)
        assert (deploy_root / "bin" / "lotabots-cli").is_file()

    def test_skip_tests(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        layout = materialize_layout(deploy_root)
        spec = default_registry().get("core")
        result = execute_component(spec, _context(workspace, skip_tests=True), mock_registry, layout)
        assert result.test is StepOutcome.SKIPPED
        assert result.succeeded
        assert mock_adapter.calls() == ["core:build"]

    def test_missing_artifact_is_install_failure(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry
    ):
        (workspace / "lotabots-whatsapp" / "target" / "release" / "lotabots-whatsapp").unlink()
        layout = materialize_layout(deploy_root)
        result = execute_component(default_registry().get("whatsapp"), _context(workspace), mock_registry, layout)
        assert result.install is StepOutcome.FAILED
        assert isinstance(result.errors[0], InstallFailure)
        assert result.state is ComponentState.FAILED

    def test_no_targets_install_skipped(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry
    ):
        layout = materialize_layout(deploy_root)
        result = execute_component(default_registry().get("gemini"), _context(workspace), mock_registry, layout)
        assert result.install is StepOutcome.SKIPPED
        assert result.succeeded


# ── Pipeline ─────────────────────────────────────────────────────────


class TestExecutePipeline:
    def test_strict_order(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        specs = default_registry().resolve(["gemini", "core", "cli"])
        report = execute_pipeline(specs, _context(workspace), mock_registry, materialize_layout(deploy_root))
        assert report.names() == ["gemini", "core", "cli"]
        assert mock_adapter.calls() == [
            "gemini:build", "gemini:test",
            "core:build", "core:test",
            "cli:build", "cli:test",
        ]
        assert report.status == "ok"

    def test_failure_does_not_stop_run(
        self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry, mock_adapter: MockAdapter
    ):
        mock_adapter.set_failure("core:build")
        specs = default_registry().resolve(["core", "gemini"])
        report = execute_pipeline(specs, _context(workspace), mock_registry, materialize_layout(deploy_root))
        assert report.get("core").overall == "failure"
        assert report.get("gemini").overall == "success"
        assert report.status == "partial"
        assert not report.ok
        assert report.to_dict()["failed"] == 1

    def test_empty(self, workspace: Path, deploy_root: Path, mock_registry: AdapterRegistry):
        report = execute_pipeline([], _context(workspace), mock_registry, DeploymentLayout(deploy_root))
        assert report.total == 0
        assert report.ok

    def test_dry_run_never_installs(self, workspace: Path, deploy_root: Path, mock_adapter: MockAdapter):
        registry = AdapterRegistry()
        registry.register(mock_adapter)
        specs = default_registry().resolve(["cli"])
        report = execute_pipeline(
            specs, _context(workspace, dry_run=True), registry, DeploymentLayout(deploy_root)
        )
        result = report.get("cli")
        assert result.build is StepOutcome.SKIPPED
        assert result.install is StepOutcome.SKIPPED
        assert result.succeeded
        assert mock_adapter.call_count == 0
        assert not deploy_root.exists()


class TestOperationId:
    def test_format(self):
        op_id = generate_operation_id()
        assert op_id.startswith("op-")
        assert op_id != generate_operation_id()
