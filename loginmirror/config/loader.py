"""
Config Loader — Load mirror settings from a YAML file and the environment.

Priority (highest first):
1. LOGIN_MIRROR_* environment variables
2. The YAML settings file (LOGIN_MIRROR_CONFIG, or an explicit path)
3. Defaults

## Example file

    enabled: true
    preskip_incompatible: false
    diff_on_noop: false
    state_file: state/login_mirror_status.json
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from ..errors import ConfigurationError
from ..mirror.config import MirrorSettings, env_overrides

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "LOGIN_MIRROR_CONFIG"


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping; an empty file yields an empty dict."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping at top level")
    return data


def load_settings(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MirrorSettings:
    """
    Load mirror settings.

    Args:
        path: Settings file. Defaults to $LOGIN_MIRROR_CONFIG if set.
        environ: Environment mapping (defaults to os.environ)

    Raises:
        ConfigurationError: If a value is invalid or the file is unreadable
    """
    env = os.environ if environ is None else environ

    if path is None and env.get(CONFIG_ENV_VAR):
        path = Path(env[CONFIG_ENV_VAR])

    data: Dict[str, Any] = {}
    if path is not None:
        if not path.exists():
            raise ConfigurationError(f"Settings file does not exist: {path}")
        data = load_yaml(path)
        # Also accept the settings nested under a "mirror" key
        if set(data) == {"mirror"} and isinstance(data["mirror"], dict):
            data = data["mirror"]
        logger.info(f"Loaded mirror settings from {path}")

    settings = MirrorSettings.from_mapping(data)
    return settings.merged(env_overrides(env))
