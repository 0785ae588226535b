from typing import List, Protocol

from backup_monitor.domain.run import RunKind, RunOutcome
from backup_monitor.domain.state import AggregateStatus, JobStatusRecord


class Presenter(Protocol):
    """
    Protocol class for presenters (tray icon, notifications, ...).
    All methods are called on the scheduler's event loop and must not block.
    """

    def publish(self, statuses: List[JobStatusRecord], aggregate: AggregateStatus) -> None:
        """Show the current status of every job and the summary across all jobs."""
        ...

    def job_started(self, job_key: str, kind: RunKind, label: str) -> None:
        """A backup script or post-backup action has been launched."""
        ...

    def job_finished(self, job_key: str, kind: RunKind, label: str, outcome: RunOutcome, message: str) -> None:
        """A backup script or post-backup action has completed."""
        ...

    def offer_post_actions(self, job_key: str, labels: List[str]) -> None:
        """Let the user choose one of the post-backup actions, answered with ExecutePostAction."""
        ...

    def show_reminder(self, overdue_jobs: List[str]) -> None:
        """Remind the user that backups are out of date."""
        ...
