"""
lotadeploy — CLI entrypoint.

Usage:
    lotadeploy --help
    lotadeploy deploy -e production -c cli,whatsapp
    lotadeploy probe --json
    lotadeploy history -n 5
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from lotadeploy import __version__
from lotadeploy.core.observability.logging_config import setup_logging


def _log_level(verbose: bool, quiet: bool, debug: bool) -> str:
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return os.environ.get("LOTADEPLOY_LOG_LEVEL", "WARNING")


def _configure_logging(verbose: bool, quiet: bool, debug: bool) -> None:
    setup_logging(
        level=_log_level(verbose, quiet, debug),
        log_file=os.environ.get("LOTADEPLOY_LOG_FILE"),
        log_file_level=os.environ.get("LOTADEPLOY_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def _capability_source(mock: bool):
    """Accelerator source for a CLI run. ``--mock`` never touches hardware."""
    from lotadeploy.core.services.capability import NvidiaSmiSource, StaticCapabilitySource

    if mock:
        return StaticCapabilitySource.absent()
    return NvidiaSmiSource()


@click.group()
@click.version_option(version=__version__, prog_name="lotadeploy")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool, debug: bool) -> None:
    """lotadeploy — build, test and deploy the lotabots workspace."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug

    # ── Logging setup (once, at process start) ──────────────────
    _configure_logging(verbose, quiet, debug)


# ── deploy ──────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--environment",
    "-e",
    default="development",
    show_default=True,
    help="Deployment environment (development or production).",
)
@click.option(
    "--deploy-dir",
    "-d",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Deployment root (default: /opt/lotabots or lotadeploy.yml).",
)
@click.option(
    "--components",
    "-c",
    default=None,
    help="Comma-separated components to deploy, in order (default: all).",
)
@click.option("--features", "-f", default=None, help="Cargo features for the cli build (default: gemini).")
@click.option("--skip-tests", "-s", is_flag=True, help="Skip running tests.")
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root holding the component directories.",
)
@click.option("--verbose", "-v", "verbose_build", is_flag=True, help="Verbose builds and diagnostics.")
@click.option("--dry-run", is_flag=True, help="Plan and validate without building or installing.")
@click.option("--mock", is_flag=True, help="Use mock adapters (no real builds).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def deploy(
    ctx: click.Context,
    environment: str,
    deploy_dir: Path | None,
    components: str | None,
    features: str | None,
    skip_tests: bool,
    workspace: Path,
    verbose_build: bool,
    dry_run: bool,
    mock: bool,
    as_json: bool,
) -> None:
    """Build, test and install workspace components.

    Examples:

        lotadeploy deploy

        lotadeploy deploy -e production -c cli,whatsapp

        lotadeploy deploy -d /tmp/lotabots --skip-tests --dry-run
    """
    from lotadeploy.core.services.components import parse_component_list
    from lotadeploy.core.use_cases.deploy import run_deploy

    verbose = verbose_build or ctx.obj.get("verbose", False)
    if verbose_build and not ctx.obj.get("verbose"):
        _configure_logging(True, ctx.obj.get("quiet", False), ctx.obj.get("debug", False))

    result = run_deploy(
        workspace=workspace,
        environment=environment,
        deploy_dir=deploy_dir,
        components=parse_component_list(components) if components is not None else None,
        features=features,
        skip_tests=skip_tests,
        verbose=verbose,
        dry_run=dry_run,
        mock_mode=mock,
        capability_source=_capability_source(mock),
    )

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        sys.exit(result.exit_code)

    if result.error:
        click.secho(f"❌ {result.error}", fg="red")
        sys.exit(1)

    report = result.report
    profile = result.profile
    assert report is not None and profile is not None and result.layout is not None

    mode_label = "[dry-run] " if dry_run else "[mock] " if mock else ""
    click.secho(
        f"\n🚀 {mode_label}deploy — {result.environment.value if result.environment else environment}",
        fg="cyan",
        bold=True,
    )
    degraded = " (degraded to CPU-only)" if profile.degraded else ""
    click.echo(f"   Accelerator: {profile.status.value}{degraded}")
    click.echo(f"   RUSTFLAGS: {profile.rustflags}")
    click.echo()

    for name in result.unknown_components:
        click.secho(f"   ⚠️  Unknown component: {name}", fg="yellow")

    for pipeline in report.results:
        if pipeline.succeeded:
            click.secho(f"   ✓ {pipeline.name}", fg="green", nl=False)
        else:
            click.secho(f"   ✗ {pipeline.name}", fg="red", nl=False)
        click.echo(
            f"  build={pipeline.build.value} test={pipeline.test.value} install={pipeline.install.value}"
        )
        for error in pipeline.errors:
            for line in error.message.split("\n")[:5]:
                click.echo(f"     │ {line}")
        if pipeline.registration is not None:
            reg = pipeline.registration
            detail = f" ({reg.reason})" if reg.reason and not reg.registered else ""
            click.echo(f"     service: {reg.outcome.value}{detail}")
        if verbose:
            for receipt in pipeline.receipts:
                if receipt.ok and receipt.output:
                    for line in receipt.output.split("\n")[-10:]:
                        click.echo(f"     │ {line}")

    if verbose and result.diagnostics:
        click.echo()
        click.secho("   Diagnostics:", fg="white", bold=True)
        for key, value in result.diagnostics.items():
            click.echo(f"     {key}: {value}")

    click.echo()
    status_color = {"ok": "green", "partial": "yellow", "failed": "red"}.get(report.status, "white")
    click.secho(
        f"   Result: {report.succeeded}/{report.total} succeeded",
        fg=status_color,
        bold=True,
    )
    click.echo(f"   Deployed components: {' '.join(report.names()) or '(none)'}")
    click.echo(f"   Deployment directory: {result.layout.root}")
    click.echo()

    sys.exit(result.exit_code)


# ── probe ───────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--environment",
    "-e",
    default="development",
    show_default=True,
    help="Environment whose accelerator policy applies.",
)
@click.option("--mock", is_flag=True, help="Report a host without an accelerator.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def probe(environment: str, mock: bool, as_json: bool) -> None:
    """Detect the accelerator and show the build flags a deploy would use."""
    from lotadeploy.core.config.loader import parse_environment
    from lotadeploy.core.errors import AcceleratorPolicyViolation, ConfigError
    from lotadeploy.core.services.capability import resolve_capability

    try:
        env = parse_environment(environment)
        profile = resolve_capability(_capability_source(mock), env)
    except (AcceleratorPolicyViolation, ConfigError) as e:
        if as_json:
            click.echo(json.dumps({"error": str(e), "error_type": type(e).__name__}, indent=2))
        else:
            click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(profile.to_dict(), indent=2))
        return

    color = {"available": "green", "incompatible": "yellow", "absent": "white"}.get(
        profile.status.value, "white"
    )
    click.secho(f"\n🔍 Accelerator: {profile.status.value}", fg=color, bold=True)
    if profile.driver_version:
        click.echo(f"   Driver: {profile.driver_version}")
    if profile.library_version:
        click.echo(f"   NVML library: {profile.library_version}")
    if profile.accelerator_version:
        click.echo(f"   CUDA: {profile.accelerator_version}")
    if profile.degraded:
        click.secho("   Degraded to CPU-only build flags", fg="yellow")
    click.echo(f"   RUSTFLAGS: {profile.rustflags}")
    click.echo()


# ── components ──────────────────────────────────────────────────


@cli.command("components")
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root (for lotadeploy.yml).",
)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def list_components(workspace: Path, as_json: bool) -> None:
    """List the components a deploy knows about, in default order."""
    from lotadeploy.core.config.loader import load_settings
    from lotadeploy.core.errors import ConfigError
    from lotadeploy.core.services.components import default_registry

    try:
        settings = load_settings(workspace.resolve())
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red")
        sys.exit(1)

    registry = default_registry(settings.service_user)
    specs = [registry.require(name) for name in registry.names()]

    if as_json:
        click.echo(json.dumps([s.model_dump(mode="json") for s in specs], indent=2))
        return

    click.secho(f"\n📦 Components: {len(registry)}", fg="cyan", bold=True)
    for spec in specs:
        service = f"  [service: {spec.service_unit.unit_name}]" if spec.service_unit else ""
        click.echo(f"   • {spec.name}  → {spec.directory}{service}")
    click.echo()


# ── history ─────────────────────────────────────────────────────


@cli.command()
@click.option(
    "--workspace",
    "-w",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Workspace root holding the audit ledger.",
)
@click.option("-n", "count", type=click.IntRange(min=1), default=20, show_default=True, help="Number of runs.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
def history(workspace: Path, count: int, as_json: bool) -> None:
    """Show recent deployment runs from the audit ledger."""
    from lotadeploy.core.persistence.audit import AuditWriter

    entries = AuditWriter(workspace=workspace.resolve()).read_recent(count)

    if as_json:
        click.echo(json.dumps([e.model_dump(mode="json") for e in entries], indent=2))
        return

    if not entries:
        click.echo("No deployments recorded.")
        return

    click.secho(f"\n📜 Last {len(entries)} deployment(s)", fg="cyan", bold=True)
    status_color = {"ok": "green", "partial": "yellow", "failed": "red", "aborted": "red"}
    for entry in entries:
        label = "dry-run " if entry.dry_run else ""
        click.secho(
            f"   {entry.timestamp[:19]}  {label}{entry.environment or '?'}  {entry.status}",
            fg=status_color.get(entry.status, "white"),
            nl=False,
        )
        click.echo(
            f"  {entry.components_succeeded}/{entry.components_succeeded + entry.components_failed}"
            f"  {entry.operation_id}"
        )
        for error in entry.errors[:3]:
            click.echo(f"     │ {error}")
    click.echo()


# ── Entrypoint ──────────────────────────────────────────────────


def main(args: list[str] | None = None) -> None:
    """Console-script entrypoint. Usage errors exit 1, like any failure."""
    try:
        code = cli.main(args=args, prog_name="lotadeploy", standalone_mode=False)
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        sys.exit(1)
    except click.ClickException as e:
        e.show()
        sys.exit(1)
    if isinstance(code, int):
        sys.exit(code)


if __name__ == "__main__":
    main()
