from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Optional

from .events import EXIT_KEYS, TICK_RATE_SECONDS

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class AppConfig:
    bucket: Optional[str] = None
    region: Optional[str] = None
    profile: Optional[str] = None
    root: str = "."
    tick_rate: float = TICK_RATE_SECONDS
    exit_keys: tuple[str, ...] = tuple(sorted(EXIT_KEYS))
    keymap: dict[str, str] = field(default_factory=dict)
    log_file: Optional[str] = None
    log_level: str = "INFO"


def config_base_dir() -> Path:
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        base = Path(config_home).expanduser()
    else:
        base = Path.home() / ".config"
    return base / "s3tui"


def default_config_path() -> Path:
    return config_base_dir() / "config.json"


def _read_config_file(path: Path) -> dict[str, object]:
    try:
        payload = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except (OSError, ValueError) as exc:
        logging.getLogger(__name__).warning("Ignoring config %s: %s", path, exc)
        return {}
    if not isinstance(payload, dict):
        return {}
    return payload


def _text(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    normalized = value.strip()
    return normalized or None


def _tick_rate(value: object) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value <= 0:
        return None
    return float(value)


def _log_level(value: object) -> Optional[str]:
    text = _text(value)
    if text is None or text.upper() not in LOG_LEVELS:
        return None
    return text.upper()


def load_config(path: Optional[Path] = None) -> AppConfig:
    payload = _read_config_file(path or default_config_path())
    config = AppConfig()
    changes: dict[str, object] = {}
    for name in ("bucket", "region", "profile", "root", "log_file"):
        value = _text(payload.get(name))
        if value is not None:
            changes[name] = value
    tick_ms = _tick_rate(payload.get("tick_ms"))
    if tick_ms is not None:
        changes["tick_rate"] = tick_ms / 1000.0
    level = _log_level(payload.get("log_level"))
    if level is not None:
        changes["log_level"] = level
    exit_keys = payload.get("exit_keys")
    if isinstance(exit_keys, list):
        keys = tuple(key for key in (_text(item) for item in exit_keys) if key)
        if keys:
            changes["exit_keys"] = keys
    keymap = payload.get("keymap")
    if isinstance(keymap, dict):
        changes["keymap"] = {
            str(key): str(value)
            for key, value in keymap.items()
            if _text(key) and _text(value)
        }
    return replace(config, **changes)


def configure_logging(config: AppConfig) -> None:
    """Send package logs to ``config.log_file``; stay silent otherwise.

    The terminal belongs to the TUI, so without a log file nothing is
    emitted.
    """
    package_logger = logging.getLogger("s3tui")
    if not config.log_file:
        package_logger.addHandler(logging.NullHandler())
        return
    handler = logging.FileHandler(Path(config.log_file).expanduser())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    package_logger.addHandler(handler)
    package_logger.setLevel(config.log_level)
