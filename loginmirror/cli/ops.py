"""
CLI ops commands — status, metrics, health.

Usage:
    python -m loginmirror.main status [--json]
    python -m loginmirror.main metrics [--format prometheus|json]
    python -m loginmirror.main health [--json]

metrics and health load the two snapshots given by --primary and
--secondary, refresh the consistency metrics from them, and report.
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from ..mirror import compat
from ..mirror.context import MirrorContext
from ..mirror.state import DEFAULT_STATE_PATH, MirrorState
from ..persistence.snapshot import load_snapshot
from ..stores.memory import CHECKPOINT_KEY
from .common import open_context, primary_option, secondary_option


def _refresh(context: MirrorContext) -> None:
    context.record_diff()
    for record in context.primary.list_all():
        findings = compat.classify(record)
        if findings:
            context.metrics.record_incompatible(findings)


@click.command("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@secondary_option
@click.pass_context
def status(ctx: click.Context, as_json: bool, secondary_path: Path) -> None:
    """Show mirror status, settings and checkpoint."""
    settings = ctx.obj["settings"]
    state = MirrorState.load(settings.state_file or DEFAULT_STATE_PATH)

    checkpoint = None
    if secondary_path.exists():
        try:
            checkpoint = load_snapshot(secondary_path).meta.get(CHECKPOINT_KEY)
        except (OSError, ValueError) as e:
            raise click.ClickException(f"Could not load snapshot {secondary_path}: {e}")

    result = {
        "settings": settings.to_dict(),
        "checkpoint": checkpoint,
        **state.to_dict(),
    }

    if as_json:
        click.echo(json.dumps(result, indent=2, default=str))
        return

    click.echo(f"Activation:  {state.activation}")
    if state.activated_at_iso:
        click.echo(f"Activated:   {state.activated_at_iso}")
    click.echo(f"Checkpoint:  {checkpoint or '-'}")
    click.echo("")
    for name, sync in (("Migration", state.migration), ("Mirroring", state.mirroring)):
        color = {"ok": "green", "noop": "cyan", "failed": "red"}.get(sync.status, "white")
        click.echo(f"{name}:")
        click.echo("  Status:    ", nl=False)
        click.secho(sync.status, fg=color)
        click.echo(f"  Last sync: {sync.last_sync_iso or 'never'}")
        if sync.detail:
            click.echo(f"  Detail:    {sync.detail}")
        if sync.last_error:
            click.echo(f"  Error:     {sync.last_error}")
    click.echo("")
    click.echo("Settings:")
    for key, value in settings.to_dict().items():
        click.echo(f"  {key:22} {value}")


@click.command("metrics")
@click.option("--format", "output_format", type=click.Choice(["prometheus", "json"]), default="prometheus")
@primary_option
@secondary_option
@click.pass_context
def metrics_cmd(ctx: click.Context, output_format: str, primary_path: Path, secondary_path: Path) -> None:
    """Export consistency metrics for a pair of snapshots."""
    context = open_context(primary_path, secondary_path, ctx.obj["settings"])
    _refresh(context)
    registry = context.metrics.registry

    if output_format == "json":
        click.echo(json.dumps(registry.export_json(), indent=2))
    else:
        click.echo(registry.export_prometheus())


@click.command("health")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@primary_option
@secondary_option
@click.pass_context
def health(ctx: click.Context, as_json: bool, primary_path: Path, secondary_path: Path) -> None:
    """Check mirror health status."""
    from ..observability.health import HealthChecker, HealthStatus

    context = open_context(primary_path, secondary_path, ctx.obj["settings"])
    _refresh(context)

    result = HealthChecker(context).check()

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        status_colors = {
            HealthStatus.HEALTHY: ("✅", "green"),
            HealthStatus.DEGRADED: ("⚠️", "yellow"),
            HealthStatus.UNHEALTHY: ("❌", "red"),
        }
        icon, color = status_colors.get(result.status, ("❓", "white"))

        click.echo()
        click.secho(f"{icon} Mirror Health: {result.status.value.upper()}", fg=color, bold=True)
        click.echo()

        click.echo("Components:")
        for component in result.components:
            c_icon, c_color = status_colors.get(component.status, ("❓", "white"))
            click.echo(f"  {c_icon} ", nl=False)
            click.secho(f"{component.name}", fg=c_color, bold=True, nl=False)
            click.echo(f": {component.message}")
            if component.latency_ms:
                click.echo(f"      Latency: {component.latency_ms:.1f}ms")
        click.echo()

    # Exit code based on health
    if result.status == HealthStatus.UNHEALTHY:
        raise SystemExit(1)
