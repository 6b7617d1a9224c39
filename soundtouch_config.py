"""
SoundTouch Hub configuration.

Settings come from, in increasing priority:
  1. the defaults below
  2. the first JSON file found (explicit path, $SOUNDTOUCH_HUB_CONFIG,
     ./soundtouch_hub.json)
  3. SOUNDTOUCH_HUB_<FIELD> environment variables
  4. command-line flags (see soundtouch_api.main)

Usage:
    from soundtouch_config import load_settings

    settings = load_settings()
    settings.discovery_timeout  # 5.0
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import List, Optional

from soundtouch_errors import ConfigError

logger = logging.getLogger(__name__)

ENV_PREFIX = "SOUNDTOUCH_HUB_"
CONFIG_ENV = "SOUNDTOUCH_HUB_CONFIG"
DEFAULT_CONFIG_FILE = "soundtouch_hub.json"

DEFAULT_STATIC_DIR = str(Path(__file__).resolve().parent / "frontend")

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


@dataclass
class Settings:
    """Runtime settings for the hub."""

    host: str = "0.0.0.0"
    port: int = 3000

    # Discovery
    service_type: str = "_soundtouch._tcp.local."
    discovery_timeout: float = 5.0
    discovery_poll_interval: float = 0.1
    resolve_timeout: float = 1.5
    scan_on_startup: bool = True

    # Live sessions
    status_interval: float = 2.0

    # Speaker control API
    device_port: int = 8090
    http_timeout: float = 5.0

    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    static_dir: str = DEFAULT_STATIC_DIR
    log_level: str = "INFO"


def _coerce(name: str, raw, default):
    """Convert a raw file/env value to the type of the field's default."""
    try:
        if isinstance(default, bool):
            if isinstance(raw, bool):
                return raw
            text = str(raw).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ValueError(f"not a boolean: {raw!r}")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, list):
            if isinstance(raw, list):
                return [str(item) for item in raw]
            return [part.strip() for part in str(raw).split(",") if part.strip()]
        return str(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {raw!r} ({e})") from e


def _read_config_file(path: Optional[str]) -> dict:
    candidates = [path, os.environ.get(CONFIG_ENV), DEFAULT_CONFIG_FILE]
    for candidate in candidates:
        if not candidate:
            continue
        try:
            with open(candidate) as f:
                data = json.load(f)
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", candidate, e)
            continue

        if not isinstance(data, dict):
            logger.error("Config %s: expected a JSON object, ignoring", candidate)
            continue
        logger.info("Config loaded from %s", candidate)
        return data
    return {}


def load_settings(path: Optional[str] = None, environ: Optional[dict] = None) -> Settings:
    """
    Build Settings from defaults, config file and environment.

    Args:
        path: Explicit config file. Missing files fall through to the next candidate.
        environ: Environment mapping (default: os.environ)

    Returns:
        Settings instance

    Raises:
        ConfigError: a value cannot be converted to the field's type
    """
    environ = os.environ if environ is None else environ
    defaults = Settings()
    known = {f.name: getattr(defaults, f.name) for f in fields(Settings)}
    overrides = {}

    for key, raw in _read_config_file(path).items():
        if key not in known:
            logger.warning("Unknown config key '%s' ignored", key)
            continue
        overrides[key] = _coerce(key, raw, known[key])

    for name, default in known.items():
        raw = environ.get(ENV_PREFIX + name.upper())
        if raw is not None:
            overrides[name] = _coerce(name, raw, default)

    return replace(defaults, **overrides)
