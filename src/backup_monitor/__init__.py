"""
Backup Monitor

Runs user-defined backup scripts on a fixed interval, as soon as their backup
target is present and writable, and reminds the user when backups are overdue.

Core Concepts:

Job:
    A configured backup script with its interval, optional reminder, optional
    backup path and optional post-backup actions (e.g. unmounting the drive).

Job State Machine:
    Owns the lifecycle of one job. Decides from events whether the job waits
    for its device, waits for its interval, runs, or awaits a post-backup
    action, and whether it is overdue.

Scheduler:
    Owns the state machines of all jobs and feeds them events (timer ticks,
    readiness changes, script completions, user commands, settings reloads)
    one at a time through a single queue.

Relationships:
    - A Job has exactly one state machine and at most one running script.
    - Device monitors and the process runner report to the Scheduler only.
"""

from .domain import JobConfig, Phase, PostBackupAction
from .machine import JobStateMachine
from .scheduler import Scheduler

__all__ = ["JobConfig", "Phase", "PostBackupAction", "JobStateMachine", "Scheduler"]
