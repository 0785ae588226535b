import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex[:8]}"


class RunKind(str, Enum):
    BACKUP = "backup"
    POST_ACTION = "post_action"


class RunOutcome(str, Enum):
    UNKNOWN = "unknown"
    SUCCESS = "success"
    FAILURE = "failure"


class ProcessResult(BaseModel):
    """
    The single completion record produced for every launched script.
    """
    exit_status: Optional[int] = Field(None, description="Exit status, negative for a terminating signal, None if the process never started")
    stdout: str = ""
    stderr: str = ""
    started_at: datetime
    finished_at: datetime
    error: Optional[str] = Field(None, description="Why the process could not be spawned")

    @property
    def success(self) -> bool:
        return self.exit_status == 0 and self.error is None

    @property
    def duration(self):
        return self.finished_at - self.started_at

    def describe(self) -> str:
        if self.error is not None:
            return f"failed with error: {self.error}"
        if self.exit_status is None:
            return "failed"
        if self.exit_status < 0:
            return f"killed by signal {-self.exit_status}"
        if self.exit_status == 0:
            return "finished"
        return f"failed with exit code {self.exit_status}"
