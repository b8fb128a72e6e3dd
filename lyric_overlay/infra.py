#!/usr/bin/env python3
"""
Configuration

Smart defaults for a single-machine DJ setup, overridable from the
environment (and a .env file) and finally from the command line.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "LYRIC_OVERLAY_"


def load_env_files() -> Optional[Path]:
    """Load the first .env found in the usual places. Returns its path."""
    env_locations = [
        Path.cwd() / '.env',
        Path.home() / '.env',
    ]
    for env_path in env_locations:
        if env_path.exists():
            load_dotenv(env_path)
            return env_path
    return None


def _env_str(environ: Mapping[str, str], key: str, default: str) -> str:
    value = environ.get(ENV_PREFIX + key, '').strip()
    return value or default


def _env_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(ENV_PREFIX + key, '').strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring {ENV_PREFIX + key}={raw!r}: not an integer")
        return default


def _env_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(ENV_PREFIX + key, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {ENV_PREFIX + key}={raw!r}: not a number")
        return default


@dataclass
class Config:
    """Runtime configuration for the overlay."""

    # Inbound OSC from the DJ controller
    osc_host: str = "0.0.0.0"
    osc_port: int = 3170

    # WebSocket push to display clients
    ws_host: str = "0.0.0.0"
    ws_port: int = 8081

    # Longest a line stays up when the next one is far away (instrumentals)
    max_display_sec: float = 10.0

    # Negative = show lyrics early
    timing_offset_ms: int = 0

    cache_dir: Path = field(default_factory=lambda: Path.cwd() / "cache")
    lrclib_url: str = "https://lrclib.net/api"
    http_timeout: float = 10.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a config from LYRIC_OVERLAY_* variables, falling back to defaults."""
        env = os.environ if environ is None else environ
        defaults = cls()
        cache_dir = _env_str(env, 'CACHE_DIR', '')
        return cls(
            osc_host=_env_str(env, 'OSC_HOST', defaults.osc_host),
            osc_port=_env_int(env, 'OSC_PORT', defaults.osc_port),
            ws_host=_env_str(env, 'WS_HOST', defaults.ws_host),
            ws_port=_env_int(env, 'WS_PORT', defaults.ws_port),
            max_display_sec=_env_float(env, 'MAX_DISPLAY_SEC', defaults.max_display_sec),
            timing_offset_ms=_env_int(env, 'TIMING_OFFSET_MS', defaults.timing_offset_ms),
            cache_dir=Path(cache_dir).expanduser() if cache_dir else defaults.cache_dir,
            lrclib_url=_env_str(env, 'LRCLIB_URL', defaults.lrclib_url).rstrip('/'),
            http_timeout=_env_float(env, 'HTTP_TIMEOUT', defaults.http_timeout),
        )
