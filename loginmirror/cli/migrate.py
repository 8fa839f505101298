"""
CLI migrate command — run one rolling migration between two snapshots.

Usage:
    python -m loginmirror.main migrate --primary FILE --secondary FILE [--force]
"""

from __future__ import annotations

from pathlib import Path

import click

from ..errors import MigrationError
from ..mirror.migrator import RollingMigrator
from .common import open_context


@click.command("migrate")
@click.option(
    "--primary",
    "primary_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Primary store snapshot",
)
@click.option(
    "--secondary",
    "secondary_path",
    required=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Secondary store snapshot (created if missing)",
)
@click.option("--force", is_flag=True, help="Clear the checkpoint first so the reload always runs")
@click.pass_context
def migrate(ctx: click.Context, primary_path: Path, secondary_path: Path, force: bool) -> None:
    """Reload the secondary store if the primary changed."""
    context = open_context(primary_path, secondary_path, ctx.obj["settings"])

    if force:
        context.secondary.set_checkpoint(None)
        click.echo("Checkpoint cleared")

    try:
        report = RollingMigrator(context).run_if_needed()
    except MigrationError as e:
        click.secho(f"✗ Migration failed: {e.message}", fg="red", err=True)
        for failure in e.failures[:10]:
            message = failure.error.message if failure.error else "unknown error"
            click.echo(f"    {failure.record_id}: {message}", err=True)
        if len(e.failures) > 10:
            click.echo(f"    ... and {len(e.failures) - 10} more", err=True)
        raise SystemExit(1)

    if report.migrated_records:
        click.secho(f"✓ Migrated {report.migrated} records", fg="green")
        if report.skipped:
            click.echo(f"  Skipped (incompatible): {report.skipped}")
    else:
        click.secho(f"No migration needed ({report.reason})", fg="cyan")

    click.echo(f"  Fingerprint: {report.fingerprint or '-'}")
    if report.diff is not None:
        click.echo(f"  Diff:        {report.diff}")
    click.echo(f"  Duration:    {report.duration_ms}ms")
