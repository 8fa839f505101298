"""
Mirror Configuration — Parse LOGIN_MIRROR_* environment variables.

Minimal config to arm mirroring:
    LOGIN_MIRROR_ENABLED=true

Optional:
    LOGIN_MIRROR_PRESKIP_INCOMPATIBLE=false   skip records the secondary mishandles
    LOGIN_MIRROR_DIFF_ON_NOOP=false           record the diff metric on no-op migrations
    LOGIN_MIRROR_BLOCKING=false               apply events in the publisher's thread
    LOGIN_MIRROR_FAILURE_LOG_SIZE=100         recent failures kept in memory
    LOGIN_MIRROR_CLOSE_TIMEOUT=5              seconds to wait for the apply worker on disarm
    LOGIN_MIRROR_STATE_FILE=state/login_mirror_status.json
    LOGIN_MIRROR_AUDIT_FILE=audit/mirror.ndjson
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "LOGIN_MIRROR_"

TRUE_VALUES = ("true", "1", "yes", "on")
FALSE_VALUES = ("false", "0", "no", "off", "")


def parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ConfigurationError(f"{name}: expected a boolean, got {value!r}")


def parse_int(value: Any, name: str, minimum: int = 0) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name}: expected an integer, got {value!r}")
    if number < minimum:
        raise ConfigurationError(f"{name}: must be >= {minimum}, got {number}")
    return number


def parse_float(value: Any, name: str, minimum: float = 0.0) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name}: expected a number, got {value!r}")
    if number < minimum:
        raise ConfigurationError(f"{name}: must be >= {minimum}, got {number}")
    return number


@dataclass
class MirrorSettings:
    """Mirror engine settings."""

    enabled: bool = False
    preskip_incompatible: bool = False
    diff_on_noop: bool = False
    blocking: bool = False
    failure_log_size: int = 100
    close_timeout: float = 5.0
    state_file: Optional[Path] = None
    audit_file: Optional[Path] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "MirrorSettings":
        """Build settings from snake_case keys, validating each value."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown mirror settings: {', '.join(sorted(unknown))}")

        settings = cls()
        for key, value in data.items():
            if value is None:
                continue
            if key in ("enabled", "preskip_incompatible", "diff_on_noop", "blocking"):
                setattr(settings, key, parse_bool(value, key))
            elif key == "failure_log_size":
                settings.failure_log_size = parse_int(value, key, minimum=1)
            elif key == "close_timeout":
                settings.close_timeout = parse_float(value, key)
            else:
                setattr(settings, key, Path(value) if value else None)
        return settings

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MirrorSettings":
        """Parse settings from environment variables."""
        return cls.from_mapping(env_overrides(environ))

    def merged(self, overrides: Mapping[str, Any]) -> "MirrorSettings":
        data = self.to_dict()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return MirrorSettings.from_mapping(data)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("state_file", "audit_file"):
            if data[key] is not None:
                data[key] = str(data[key])
        return data


def env_overrides(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """LOGIN_MIRROR_* variables that are set, keyed by setting name."""
    env = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for f in fields(MirrorSettings):
        value = env.get(ENV_PREFIX + f.name.upper())
        if value is not None:
            overrides[f.name] = value
    if overrides:
        logger.debug(f"Mirror settings from environment: {sorted(overrides)}")
    return overrides
