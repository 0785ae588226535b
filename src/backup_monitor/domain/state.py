from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .job import PostBackupAction
from .run import RunKind, RunOutcome


class Phase(str, Enum):
    WAITING_FOR_DEVICE = "waiting_for_device"
    WAITING_FOR_INTERVAL = "waiting_for_interval"
    RUNNING = "running"
    AWAITING_POST_ACTION = "awaiting_post_action"
    RUNNING_POST_ACTION = "running_post_action"

    @property
    def is_waiting(self) -> bool:
        return self in (Phase.WAITING_FOR_DEVICE, Phase.WAITING_FOR_INTERVAL)

    @property
    def is_active(self) -> bool:
        return self in (Phase.RUNNING, Phase.RUNNING_POST_ACTION)


class JobRuntimeState(BaseModel):
    """
    Mutable runtime state of one job. Owned and mutated exclusively by the
    job's state machine.
    """
    key: str
    phase: Phase
    last_backup: Optional[datetime] = None
    last_outcome: RunOutcome = RunOutcome.UNKNOWN
    device_ready: bool = False
    pending_post_actions: List[PostBackupAction] = Field(default_factory=list)
    run_id: Optional[str] = None
    run_kind: Optional[RunKind] = None
    run_label: Optional[str] = None
    run_started_at: Optional[datetime] = None
    run_requested: bool = False
    failed_at: Optional[datetime] = None
    failure_message: Optional[str] = None


class JobStatusRecord(BaseModel):
    """
    Per-job status published to the presenter.
    """
    key: str
    icon_name: Optional[str] = None
    phase: Phase
    overdue: bool = False
    next_due: Optional[datetime] = None
    last_backup: Optional[datetime] = None
    last_outcome: RunOutcome = RunOutcome.UNKNOWN
    post_action_labels: List[str] = Field(default_factory=list)
    description: str = ""


class AggregateStatus(BaseModel):
    """
    Summary across all jobs. A projection recomputed on every publish, never
    stored.
    """
    next_due: Optional[datetime] = None
    any_overdue: bool = False
    any_waiting_for_device: bool = False
    any_running: bool = False
    degraded: bool = False

    @classmethod
    def from_statuses(cls, statuses: List[JobStatusRecord], degraded: bool = False) -> "AggregateStatus":
        due_times = [
            status.next_due for status in statuses
            if status.next_due is not None and status.phase == Phase.WAITING_FOR_INTERVAL
        ]
        return cls(
            next_due=min(due_times) if due_times else None,
            any_overdue=any(status.overdue for status in statuses),
            any_waiting_for_device=any(status.phase == Phase.WAITING_FOR_DEVICE for status in statuses),
            any_running=any(status.phase.is_active for status in statuses),
            degraded=degraded,
        )

    @property
    def needs_attention(self) -> bool:
        return self.any_overdue or self.degraded
