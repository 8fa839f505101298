"""
Login Mirror — CLI Entry Point

Usage:
    python -m loginmirror.main migrate --primary FILE --secondary FILE [--force]
    python -m loginmirror.main fingerprint FILE
    python -m loginmirror.main check-compat FILE [--json]
    python -m loginmirror.main status [--json]
    python -m loginmirror.main metrics [--format prometheus|json]
    python -m loginmirror.main health [--json]
"""

from __future__ import annotations

# Load .env file FIRST, before any other imports that might read env vars
from pathlib import Path
from dotenv import load_dotenv

_project_root = Path(__file__).parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

from typing import Optional

import click

from .cli.snapshot import check_compat, fingerprint
from .cli.migrate import migrate
from .cli.ops import health, metrics_cmd, status
from .config.loader import load_settings
from .errors import ConfigurationError
from .logging_config import setup_logging

# Initialize logging
setup_logging()


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file (default: $LOGIN_MIRROR_CONFIG)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """Login Mirror — keep a secondary login store in step with the primary."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_settings(config_path)
    except ConfigurationError as e:
        raise click.ClickException(e.message)


cli.add_command(migrate)
cli.add_command(fingerprint)
cli.add_command(check_compat)
cli.add_command(status)
cli.add_command(metrics_cmd)
cli.add_command(health)


if __name__ == "__main__":
    cli()
