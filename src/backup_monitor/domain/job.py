import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from backup_monitor.timefmt import format_duration, parse_duration


def kebab_case(name: str) -> str:
    return name.replace("_", "-")


class PostBackupAction(BaseModel):
    """
    A script the user may choose to run after a successful backup,
    e.g. unmounting the backup drive.
    """
    model_config = ConfigDict(alias_generator=kebab_case, populate_by_name=True, frozen=True)

    label: str = Field(..., min_length=1, description="Label shown to the user")
    script: str = Field(..., description="Script body, executed like the backup script")


class JobConfig(BaseModel):
    """
    Immutable definition of one backup job, as loaded from the settings file.
    """
    model_config = ConfigDict(alias_generator=kebab_case, populate_by_name=True, frozen=True)

    name: str = Field(..., min_length=1, description="Unique job name, used as the job key")
    icon_name: Optional[str] = Field(None, description="Optional icon identifier for the presenter")
    backup_script: str = Field(..., description="Script body of the backup script")
    backup_path: Optional[Path] = Field(None, description="Target path that must be present and writable before running")
    interval: timedelta = Field(..., description="Minimum time between successful backups")
    reminder: Optional[timedelta] = Field(None, description="Time past the due date after which the job is overdue")
    post_backup_actions: List[PostBackupAction] = Field(default_factory=list)
    last_backup: Optional[datetime] = Field(None, description="Seed for the last successful backup when storage has no record")

    @field_validator("interval", "reminder", mode="before")
    def parse_durations(cls, v):
        if v is None:
            return v
        return parse_duration(v)

    @field_validator("interval")
    def check_interval(cls, v: timedelta) -> timedelta:
        if v <= timedelta(0):
            raise ValueError("interval must be positive")
        return v

    @field_validator("reminder")
    def check_reminder(cls, v: Optional[timedelta]) -> Optional[timedelta]:
        if v is not None and v < timedelta(0):
            raise ValueError("reminder must not be negative")
        return v

    @field_serializer("interval", "reminder", when_used="json-unless-none")
    def dump_durations(self, v: timedelta) -> str:
        return format_duration(v)

    @field_validator("last_backup")
    def check_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            logging.getLogger(__name__).warning(
                "last-backup does not include a timezone, assuming UTC")
            return v.replace(tzinfo=timezone.utc)
        return v

    @property
    def key(self) -> str:
        return self.name

    @property
    def has_device_gate(self) -> bool:
        return self.backup_path is not None

    @property
    def post_action_labels(self) -> List[str]:
        return [action.label for action in self.post_backup_actions]
