"""
CLI snapshot commands — look at a snapshot without touching any store.

Usage:
    python -m loginmirror.main fingerprint FILE
    python -m loginmirror.main check-compat FILE [--json]
"""

from __future__ import annotations

import json
from collections import Counter
from pathlib import Path

import click

from ..mirror import compat
from ..mirror.checksum import fingerprint_records
from ..persistence.snapshot import load_snapshot


def _load_records(path: Path):
    try:
        return load_snapshot(path).records
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Could not load snapshot {path}: {e}")


@click.command("fingerprint")
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def fingerprint(snapshot: Path) -> None:
    """Print the order-independent fingerprint of a snapshot."""
    records = _load_records(snapshot)
    value = fingerprint_records(records)
    if value is None:
        click.echo("(empty)")
        return
    click.echo(value)


@click.command("check-compat")
@click.argument("snapshot", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def check_compat(snapshot: Path, as_json: bool) -> None:
    """List records the secondary store is known to mishandle."""
    records = _load_records(snapshot)

    flagged = []
    totals: Counter = Counter()
    for record in records:
        findings = compat.classify(record)
        if not findings:
            continue
        flagged.append({
            "id": record.id,
            "origin": record.origin,
            "findings": [{"field": f.field, "kind": f.kind} for f in findings],
        })
        for f in findings:
            totals[f"{f.field}:{f.kind}"] += 1

    if as_json:
        click.echo(json.dumps({
            "records": len(records),
            "incompatible": len(flagged),
            "totals": dict(sorted(totals.items())),
            "flagged": flagged,
        }, indent=2, ensure_ascii=False))
        return

    click.echo(f"Records:      {len(records)}")
    click.echo(f"Incompatible: {len(flagged)}")
    if not flagged:
        click.secho("✓ All records compatible", fg="green")
        return

    click.echo("")
    for entry in flagged:
        kinds = ", ".join(f"{f['field']}={f['kind']}" for f in entry["findings"])
        click.echo(f"  {entry['id']}  {entry['origin']}  [{kinds}]")
    click.echo("")
    for key, count in sorted(totals.items()):
        click.echo(f"  {key:32} {count}")
