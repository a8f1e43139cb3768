"""Load optional settings from a YAML file plus environment overrides."""
from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .business_days import parse_iso_date

DEFAULT_CONFIG_FILE = "gantt-timeline.yaml"
DEFAULT_STORAGE_DIR = Path("~/.gantt_timeline/projects")
ENV_LOG_LEVEL = "GANTT_TIMELINE_LOG_LEVEL"
ENV_STORAGE_DIR = "GANTT_TIMELINE_STORAGE_DIR"
VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


@dataclass
class TimelineSettings:
    project_start_date: Optional[date] = None
    preserve_manual_dates: bool = False
    auto_sequence_milestones: bool = True
    storage_dir: Path = field(default_factory=lambda: DEFAULT_STORAGE_DIR.expanduser())
    log_level: str = "INFO"
    user: Optional[str] = None


def load_settings(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> TimelineSettings:
    """Read settings from ``path`` (YAML mapping) and the environment.

    A missing file yields the defaults. Environment variables win over the
    file for the log level and the storage directory.

    Raises:
        ValueError: The file is not a mapping, names an unknown key or holds
            a value of the wrong shape.
    """
    environ = os.environ if environ is None else environ
    data: Dict[str, Any] = {}
    if path is not None and Path(path).exists():
        with Path(path).open("r", encoding="utf-8") as handle:
            try:
                loaded = yaml.safe_load(handle)
            except yaml.YAMLError as exc:
                raise ValueError(f"{Path(path).name}: YAMLError: {exc}") from exc
        if loaded is None:
            loaded = {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{Path(path).name}: expected mapping, got {type(loaded).__name__}")
        data = loaded

    known = {f.name for f in fields(TimelineSettings)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    settings = TimelineSettings()
    if data.get("project_start_date") is not None:
        settings.project_start_date = _coerce_date(data["project_start_date"])
    for flag in ("preserve_manual_dates", "auto_sequence_milestones"):
        if flag in data:
            if not isinstance(data[flag], bool):
                raise ValueError(f"Setting {flag} must be true or false")
            setattr(settings, flag, data[flag])
    if data.get("storage_dir"):
        settings.storage_dir = Path(str(data["storage_dir"])).expanduser()
    if data.get("log_level"):
        settings.log_level = str(data["log_level"])
    if data.get("user"):
        settings.user = str(data["user"])

    if environ.get(ENV_LOG_LEVEL):
        settings.log_level = environ[ENV_LOG_LEVEL]
    if environ.get(ENV_STORAGE_DIR):
        settings.storage_dir = Path(environ[ENV_STORAGE_DIR]).expanduser()

    settings.log_level = settings.log_level.upper()
    if settings.log_level not in VALID_LOG_LEVELS:
        raise ValueError(f"Invalid log level {settings.log_level!r}")
    return settings


def _coerce_date(value: Any) -> date:
    # YAML parses unquoted ISO dates into ``date`` already.
    if isinstance(value, date):
        return value
    return parse_iso_date(str(value))
