import logging
import os
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator, model_validator

from backup_monitor.domain.job import JobConfig, kebab_case
from backup_monitor.errors import ConfigError
from backup_monitor.timefmt import format_duration, parse_duration

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "backup-monitor.yaml"
DATABASE_FILE_NAME = "backup-monitor.db"
SETTINGS_HEADER = "# see https://github.com/dfaust/backup-monitor/blob/master/README.md for instructions\n"


class Settings(BaseModel):
    """
    Contents of the settings file.
    """
    model_config = ConfigDict(alias_generator=kebab_case, populate_by_name=True, frozen=True)

    title: str = "Backup"
    icon_name: str = "backup"
    tick_interval: timedelta = Field(timedelta(minutes=1), description="Coarse wake-up interval of the scheduler")
    retry_interval: timedelta = Field(timedelta(hours=1), description="Pause before retrying a failed backup")
    reminder_interval: timedelta = Field(timedelta(hours=4), description="Minimum time between two reminders")
    scripts: List[JobConfig] = Field(default_factory=list)

    @field_validator("tick_interval", "retry_interval", "reminder_interval", mode="before")
    def parse_durations(cls, v):
        return parse_duration(v)

    @field_validator("tick_interval")
    def check_tick_interval(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("tick-interval must be positive")
        return v

    @field_serializer("tick_interval", "retry_interval", "reminder_interval", when_used="json")
    def dump_durations(self, v: timedelta) -> str:
        return format_duration(v)

    @model_validator(mode="after")
    def check_unique_names(self) -> "Settings":
        names = [script.name for script in self.scripts]
        if len(set(names)) != len(names):
            raise ValueError("script names must be unique")
        return self

    def job(self, name: str) -> Optional[JobConfig]:
        for script in self.scripts:
            if script.name == name:
                return script
        return None


def config_dir() -> Path:
    return Path(os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config")


def data_dir() -> Path:
    return Path(os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share")


def settings_file_path() -> Path:
    return config_dir() / SETTINGS_FILE_NAME


def default_database_url() -> str:
    return f"sqlite+aiosqlite:///{data_dir() / DATABASE_FILE_NAME}"


def parse_settings(text: str) -> Settings:
    """
    Parse and validate the YAML settings.

    Raises:
        ConfigError: If the text is not valid YAML or does not describe valid settings.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid settings file: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError("Invalid settings file: expected a mapping at the top level")

    try:
        return Settings.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Load the settings file, creating it with defaults if it does not exist.

    Raises:
        ConfigError: If the file cannot be read or is invalid.
    """
    path = path or settings_file_path()

    if not path.exists():
        logger.info("creating default settings file %s", path)
        save_settings(Settings(), path)

    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read settings file {path}: {e}") from e

    settings = parse_settings(text)
    logger.debug("settings loaded: %r", settings)
    return settings


def dump_settings(settings: Settings) -> str:
    data = settings.model_dump(mode="json", by_alias=True, exclude_none=True)
    return SETTINGS_HEADER + yaml.safe_dump(data, sort_keys=False, allow_unicode=True)


def save_settings(settings: Settings, path: Optional[Path] = None) -> None:
    path = path or settings_file_path()
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(dump_settings(settings), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot write settings file {path}: {e}") from e
    logger.debug("settings saved to %s", path)
