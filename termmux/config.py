"""Configuration helpers — safe to import from anywhere.

Call init(data_dir) once at startup to point at a data directory holding
mux_config.json and logs/. Without init() the defaults apply.
"""

import json
import os
from pathlib import Path
from typing import Any


_data_dir: Path | None = None


def init(data_dir: Path) -> None:
    """Set the data directory. Must be called before data_dir()."""
    global _data_dir, _mux_config_cache
    _data_dir = Path(data_dir).expanduser().resolve()
    _mux_config_cache = None


def data_dir() -> Path:
    """Get the data directory. Raises if init() hasn't been called."""
    if _data_dir is None:
        raise RuntimeError("config.init() not called")
    return _data_dir


def ensure_dirs() -> None:
    """Ensure all required directories exist."""
    (data_dir() / "logs").mkdir(parents=True, exist_ok=True)


# Mux config: read from the data dir, cached with mtime check
_mux_config_cache: dict[str, Any] | None = None
_mux_config_mtime: float = 0.0

_MUX_CONFIG_DEFAULTS: dict[str, Any] = {
    # Connection
    "url": "ws://localhost:4003",
    "max_queue": 1000,
    "reconnect_initial": 1.0,
    "reconnect_max": 30.0,
    "reconnect_multiplier": 2.0,
    # Placeholders
    "placeholder_ttl": 10.0,
    # Surface refit retries after a visibility change (seconds), on top of
    # the immediate and next-iteration attempts
    "refit_delays": [0.05, 0.15],
    # Expose MuxClient.snapshot()
    "debug": False,
}


def get_mux_config() -> dict[str, Any]:
    """Load mux config from the data dir, with mtime caching and defaults."""
    global _mux_config_cache, _mux_config_mtime
    if _data_dir is None:
        return dict(_MUX_CONFIG_DEFAULTS)
    config_file = _data_dir / "mux_config.json"
    try:
        mtime = config_file.stat().st_mtime
    except OSError:
        mtime = 0.0
    if _mux_config_cache is None or mtime != _mux_config_mtime:
        config = dict(_MUX_CONFIG_DEFAULTS)
        if config_file.exists():
            try:
                loaded = json.loads(config_file.read_text())
                config.update(loaded)
            except (OSError, json.JSONDecodeError):
                pass
        _mux_config_cache = config
        _mux_config_mtime = mtime
    return _mux_config_cache


def debug_enabled(settings: dict[str, Any] | None = None) -> bool:
    """Whether debug introspection is switched on (config key or TERMMUX_DEBUG=1)."""
    if os.environ.get("TERMMUX_DEBUG") == "1":
        return True
    if settings is None:
        settings = get_mux_config()
    return bool(settings.get("debug"))
