from .job import JobConfig, PostBackupAction
from .run import ProcessResult, RunKind, RunOutcome
from .state import AggregateStatus, JobRuntimeState, JobStatusRecord, Phase
from .events import (
    Event, EventType, ExecutePostAction, ProcessCompleted, ReadinessChanged, ReloadRequested, RunNow, Tick,
)
from .effects import Effect, LaunchScript, OfferPostActions, PersistLastBackup, RunFinished

__all__ = [
    "JobConfig", "PostBackupAction",
    "ProcessResult", "RunKind", "RunOutcome",
    "AggregateStatus", "JobRuntimeState", "JobStatusRecord", "Phase",
    "Event", "EventType", "ExecutePostAction", "ProcessCompleted", "ReadinessChanged", "ReloadRequested", "RunNow", "Tick",
    "Effect", "LaunchScript", "OfferPostActions", "PersistLastBackup", "RunFinished",
]
