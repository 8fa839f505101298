"""
CLI helpers — open snapshot-backed stores for one-shot commands.
"""

from __future__ import annotations

from pathlib import Path

import click

from ..errors import MirrorError
from ..mirror.config import MirrorSettings
from ..mirror.context import MirrorContext
from ..stores.memory import MemoryPrimaryStore, MemorySecondaryStore

DEFAULT_PRIMARY = "state/primary.json"
DEFAULT_SECONDARY = "state/secondary.json"

primary_option = click.option(
    "--primary",
    "primary_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_PRIMARY,
    show_default=True,
    help="Primary store snapshot",
)
secondary_option = click.option(
    "--secondary",
    "secondary_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_SECONDARY,
    show_default=True,
    help="Secondary store snapshot",
)


def open_context(primary_path: Path, secondary_path: Path, settings: MirrorSettings) -> MirrorContext:
    """Load both snapshots and open the secondary store."""
    try:
        primary = MemoryPrimaryStore.from_file(primary_path)
        secondary = MemorySecondaryStore(path=secondary_path)
        secondary.initialize()
    except MirrorError as e:
        raise click.ClickException(e.message)
    except (OSError, ValueError) as e:
        raise click.ClickException(f"Could not load snapshot: {e}")
    return MirrorContext(primary=primary, secondary=secondary, settings=settings)
