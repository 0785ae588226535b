import logging
from typing import List, Optional

from backup_monitor.domain.run import RunKind, RunOutcome
from backup_monitor.domain.state import AggregateStatus, JobStatusRecord
from backup_monitor.presenters.protocol import Presenter

logger = logging.getLogger(__name__)


class LoggingPresenter(Presenter):
    """
    Presenter that writes everything to the log. Used when no desktop
    presenter is attached.
    """

    def __init__(self, title: str = "Backup"):
        self.title: str = title
        self._last_tooltip: Optional[str] = None
        self._degraded: bool = False

    def publish(self, statuses: List[JobStatusRecord], aggregate: AggregateStatus) -> None:
        if statuses:
            tooltip = "\n\n".join(f"{status.key}:\n{status.description}" for status in statuses)
        else:
            tooltip = "No backup scripts configured"
        # only log when the text changes, publish runs after every event
        if tooltip != self._last_tooltip:
            self._last_tooltip = tooltip
            logger.info("%s status%s:\n%s", self.title, " (needs attention)" if aggregate.needs_attention else "", tooltip)
        if aggregate.degraded and not self._degraded:
            logger.warning("last backup times could not be saved")
        self._degraded = aggregate.degraded

    def job_started(self, job_key: str, kind: RunKind, label: str) -> None:
        logger.info("Running %s", label)

    def job_finished(self, job_key: str, kind: RunKind, label: str, outcome: RunOutcome, message: str) -> None:
        if outcome == RunOutcome.SUCCESS:
            logger.info(message)
        else:
            logger.warning(message)

    def offer_post_actions(self, job_key: str, labels: List[str]) -> None:
        choices = ", ".join(f"[{index}] {label}" for index, label in enumerate(labels))
        logger.info("post-backup actions available for %s: %s", job_key, choices)

    def show_reminder(self, overdue_jobs: List[str]) -> None:
        logger.warning("Backup out of date (%s). Make sure to run backups regularly", ", ".join(overdue_jobs))
