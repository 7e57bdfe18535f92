from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from history_backup.store import DEFAULT_BATCH_SIZE

DB_FILE_ENV_VAR = "HISTORY_BACKUP_DB_FILE"
CSV_FILE_ENV_VAR = "HISTORY_BACKUP_CSV_FILE"


class ConfigError(ValueError):
    """Raised when configuration is invalid."""


def _default_location(filename: str) -> str:
    return str(Path.home() / filename)


@dataclass(slots=True)
class DatabaseSettings:
    path: str = field(default_factory=lambda: _default_location("onehistory.db"))


@dataclass(slots=True)
class BackupSettings:
    batch_size: int = DEFAULT_BATCH_SIZE
    detect_default_profiles: bool = True
    history_files: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExportSettings:
    csv_path: str = field(default_factory=lambda: _default_location("onehistory.csv"))


@dataclass(slots=True)
class AppConfig:
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    backup: BackupSettings = field(default_factory=BackupSettings)
    export: ExportSettings = field(default_factory=ExportSettings)
    log_level: str = "INFO"


def _as_string_list(value: Any, *, field_name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ConfigError(f"{field_name} must be a list of strings, got: {type(value)!r}")
    return [str(item).strip() for item in value if str(item).strip()]


def _as_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value

    if isinstance(value, int) and value in {0, 1}:
        return bool(value)

    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes", "on"}:
            return True
        if normalized in {"false", "0", "no", "off"}:
            return False

    raise ConfigError(f"{field_name} must be a boolean")


def _as_int(value: Any, *, field_name: str, minimum: int | None = None) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{field_name} must be an integer")

    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{field_name} must be an integer") from exc

    if minimum is not None and parsed < minimum:
        raise ConfigError(f"{field_name} must be >= {minimum}")
    return parsed


def _as_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{field_name} must be a mapping")
    return value


def _resolve_relative_path(config_path: Path, raw_path: str) -> str:
    candidate = Path(raw_path).expanduser()
    if candidate.is_absolute():
        return str(candidate)
    return str((config_path.parent / candidate).resolve())


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load settings from a YAML file, or defaults when ``path`` is None.

    Environment variables override the database and CSV paths in both cases.
    """
    if path is None:
        return _apply_env_overrides(AppConfig())

    config_path = Path(path).expanduser().resolve()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        try:
            parsed = yaml.safe_load(handle) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Config file is not valid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ConfigError("Config root must be a mapping")

    defaults = AppConfig()

    raw_database = _as_mapping(parsed.get("database"), field_name="database")
    database_path = str(raw_database.get("path") or "").strip()
    database_settings = DatabaseSettings(
        path=(
            _resolve_relative_path(config_path, database_path)
            if database_path
            else defaults.database.path
        )
    )

    raw_backup = _as_mapping(parsed.get("backup"), field_name="backup")
    history_files = [
        _resolve_relative_path(config_path, item)
        for item in _as_string_list(
            raw_backup.get("history_files"), field_name="backup.history_files"
        )
    ]
    backup_settings = BackupSettings(
        batch_size=_as_int(
            raw_backup.get("batch_size", DEFAULT_BATCH_SIZE),
            field_name="backup.batch_size",
            minimum=1,
        ),
        detect_default_profiles=_as_bool(
            raw_backup.get("detect_default_profiles", True),
            field_name="backup.detect_default_profiles",
        ),
        history_files=history_files,
    )

    raw_export = _as_mapping(parsed.get("export"), field_name="export")
    csv_path = str(raw_export.get("csv_path") or "").strip()
    export_settings = ExportSettings(
        csv_path=(
            _resolve_relative_path(config_path, csv_path)
            if csv_path
            else defaults.export.csv_path
        )
    )

    app_config = AppConfig(
        database=database_settings,
        backup=backup_settings,
        export=export_settings,
        log_level=str(parsed.get("log_level", "INFO")).upper(),
    )
    return _apply_env_overrides(app_config)


def _apply_env_overrides(app_config: AppConfig) -> AppConfig:
    db_file = os.getenv(DB_FILE_ENV_VAR, "").strip()
    if db_file:
        app_config.database.path = str(Path(db_file).expanduser())

    csv_file = os.getenv(CSV_FILE_ENV_VAR, "").strip()
    if csv_file:
        app_config.export.csv_path = str(Path(csv_file).expanduser())
    return app_config
