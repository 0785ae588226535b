from enum import Enum
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, Field

from .run import ProcessResult


class EventType(str, Enum):
    TICK = "tick"
    READINESS_CHANGED = "readiness_changed"
    PROCESS_COMPLETED = "process_completed"
    RUN_NOW = "run_now"
    EXECUTE_POST_ACTION = "execute_post_action"
    RELOAD_REQUESTED = "reload_requested"


class BaseEvent(BaseModel):
    """
    Base class for everything that travels through the scheduler's event queue.
    """
    type: EventType


class Tick(BaseEvent):
    """
    Timer wake-up. Re-evaluates interval and overdue conditions of all jobs.
    """
    type: Literal[EventType.TICK] = EventType.TICK


class ReadinessChanged(BaseEvent):
    type: Literal[EventType.READINESS_CHANGED] = EventType.READINESS_CHANGED
    job_key: str
    ready: bool
    path: Optional[Path] = Field(None, description="Path the readiness refers to, stale reports for a replaced path are dropped")


class ProcessCompleted(BaseEvent):
    type: Literal[EventType.PROCESS_COMPLETED] = EventType.PROCESS_COMPLETED
    job_key: str
    run_id: str = Field(..., description="Identifies the run, so results of forgotten runs can be absorbed")
    result: ProcessResult


class RunNow(BaseEvent):
    type: Literal[EventType.RUN_NOW] = EventType.RUN_NOW
    job_key: str


class ExecutePostAction(BaseEvent):
    type: Literal[EventType.EXECUTE_POST_ACTION] = EventType.EXECUTE_POST_ACTION
    job_key: str
    action_index: int


class ReloadRequested(BaseEvent):
    type: Literal[EventType.RELOAD_REQUESTED] = EventType.RELOAD_REQUESTED


Event = Union[Tick, ReadinessChanged, ProcessCompleted, RunNow, ExecutePostAction, ReloadRequested]
