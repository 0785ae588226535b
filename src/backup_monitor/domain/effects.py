from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel

from .run import RunKind, RunOutcome


class LaunchScript(BaseModel):
    """
    Ask the process runner to start a script for a job.
    """
    job_key: str
    run_id: str
    kind: RunKind
    label: str
    script: str


class PersistLastBackup(BaseModel):
    """
    Ask persistence to durably record a new last-successful-backup timestamp.
    Fire-and-forget from the state machine's point of view.
    """
    job_key: str
    timestamp: datetime


class OfferPostActions(BaseModel):
    job_key: str
    labels: List[str]


class RunFinished(BaseModel):
    job_key: str
    kind: RunKind
    label: str
    outcome: RunOutcome
    message: str
    output: Optional[str] = None


Effect = Union[LaunchScript, PersistLastBackup, OfferPostActions, RunFinished]
