from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

_TRUE = ("1", "true", "yes", "y", "on")
_FALSE = ("0", "false", "no", "n", "off")

# Keys a config file may leave empty.
_NULLABLE = {"log_file"}


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    return v.strip().lower() in _TRUE


def _env_str(name: str, default: str) -> str:
    v = os.getenv(name)
    return default if v is None else v


def default_db_path() -> str:
    return str(Path("~/.local/share/markhive/bookmarks.sqlite").expanduser())


@dataclass
class Settings:
    # Storage
    db_path: str = ""
    busy_timeout_ms: int = 5000

    # Hierarchy rules
    reject_cycles: bool = True
    transactional_cascade: bool = True

    # Logging / UX
    log_level: str = "INFO"
    no_color: bool = False
    log_file: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.db_path:
            self.db_path = default_db_path()

    @staticmethod
    def from_env() -> "Settings":
        s = Settings()
        s.db_path = _env_str("MARKHIVE_DB_PATH", s.db_path)
        s.busy_timeout_ms = _env_int("MARKHIVE_BUSY_TIMEOUT_MS", s.busy_timeout_ms)

        s.reject_cycles = _env_bool("MARKHIVE_REJECT_CYCLES", s.reject_cycles)
        s.transactional_cascade = _env_bool("MARKHIVE_TRANSACTIONAL_CASCADE", s.transactional_cascade)

        s.log_level = _env_str("MARKHIVE_LOG_LEVEL", s.log_level)
        s.no_color = _env_bool("MARKHIVE_NO_COLOR", s.no_color)
        log_file = os.getenv("MARKHIVE_LOG_FILE")
        if log_file:
            s.log_file = log_file
        return s

    @staticmethod
    def from_file(path: Path) -> "Settings":
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError(f"config file must contain a mapping: {path}")
        s = Settings.from_env()
        known = {f.name for f in fields(Settings)}
        defaults = Settings()
        for k, v in data.items():
            if k in known:
                setattr(s, k, _coerce(k, v, getattr(defaults, k)))
        s.db_path = str(Path(s.db_path).expanduser())
        return s


def _coerce(key: str, value, default):
    """Convert a YAML value to the type of the setting's default."""
    if value is None:
        if key in _NULLABLE:
            return None
        raise ValueError(f"config key {key!r} cannot be empty")
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        text = str(value).strip().lower()
        if text in _TRUE or text in _FALSE:
            return text in _TRUE
        raise ValueError(f"config key {key!r} must be true or false, got {value!r}")
    if isinstance(default, int):
        if isinstance(value, bool):
            raise ValueError(f"config key {key!r} must be an integer, got {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError):
            raise ValueError(f"config key {key!r} must be an integer, got {value!r}") from None
    if isinstance(value, (dict, list)):
        raise ValueError(f"config key {key!r} must be a string, got {value!r}")
    return str(value)


def load_settings(config_path: Optional[str]) -> Settings:
    if config_path:
        return Settings.from_file(Path(config_path))
    return Settings.from_env()
