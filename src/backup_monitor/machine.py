"""
Per-job lifecycle.

A JobStateMachine never performs I/O and never blocks. Every operation takes
the current time explicitly, mutates the job's runtime state and returns the
effects the caller has to carry out (launching a script, persisting a
timestamp, notifying the presenter).
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from backup_monitor.domain.effects import Effect, LaunchScript, OfferPostActions, PersistLastBackup, RunFinished
from backup_monitor.domain.job import JobConfig
from backup_monitor.domain.run import ProcessResult, RunKind, RunOutcome, new_run_id
from backup_monitor.domain.state import JobRuntimeState, JobStatusRecord, Phase
from backup_monitor.status_text import describe_job

logger = logging.getLogger(__name__)

DEFAULT_RETRY_INTERVAL = timedelta(hours=1)


class JobStateMachine:
    def __init__(
        self,
        config: JobConfig,
        last_backup: Optional[datetime] = None,
        retry_interval: timedelta = DEFAULT_RETRY_INTERVAL,
    ):
        self.config: JobConfig = config
        self.retry_interval: timedelta = retry_interval
        ready = not config.has_device_gate
        self.state: JobRuntimeState = JobRuntimeState(
            key=config.key,
            phase=Phase.WAITING_FOR_INTERVAL if ready else Phase.WAITING_FOR_DEVICE,
            last_backup=last_backup if last_backup is not None else config.last_backup,
            device_ready=ready,
        )

    @property
    def key(self) -> str:
        return self.state.key

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def is_active(self) -> bool:
        return self.state.run_id is not None

    def next_due(self, now: datetime) -> datetime:
        """
        Earliest time an automatic run may start, ignoring the device gate.
        """
        if self.state.last_backup is None:
            due = now
        else:
            due = self.state.last_backup + self.config.interval
        if self.state.last_outcome == RunOutcome.FAILURE and self.state.failed_at is not None:
            due = max(due, self.state.failed_at + self.retry_interval)
        return due

    def overdue_at(self) -> Optional[datetime]:
        """
        Time from which the job counts as overdue. None if no reminder is
        configured or the job never ran (it is overdue right away then).
        """
        if self.config.reminder is None or self.state.last_backup is None:
            return None
        return self.state.last_backup + self.config.interval + self.config.reminder

    def is_overdue(self, now: datetime) -> bool:
        if self.config.reminder is None or self.state.phase.is_active:
            return False
        if self.state.last_backup is None:
            return True
        return now >= self.overdue_at()

    def evaluate(self, now: datetime) -> List[Effect]:
        """
        Decide whether the job has to start running. Called after every event.
        """
        if self.is_active:
            return []

        if not self.state.device_ready:
            if self.state.phase != Phase.WAITING_FOR_DEVICE:
                self._enter_waiting_for_device()
            return []

        if self.state.phase == Phase.WAITING_FOR_DEVICE:
            logger.info("backup path of `%s` is ready", self.key)
            self.state.phase = Phase.WAITING_FOR_INTERVAL

        if self.state.run_requested or now >= self.next_due(now):
            return self._start_backup(now)
        return []

    def on_readiness_changed(self, ready: bool, now: datetime) -> List[Effect]:
        if not self.config.has_device_gate:
            return []
        self.state.device_ready = ready
        if self.is_active:
            # phase follows once the process has finished
            logger.debug("readiness of `%s` changed to %s while running", self.key, ready)
            return []
        return self.evaluate(now)

    def run_now(self, now: datetime) -> List[Effect]:
        if self.is_active:
            logger.info("`%s` is already running, ignoring run request", self.key)
            return []
        self.state.run_requested = True
        effects = self.evaluate(now)
        if self.state.run_requested:
            logger.info("`%s` will run as soon as `%s` is ready", self.key, self.config.backup_path)
        return effects

    def execute_post_action(self, index: int, now: datetime) -> List[Effect]:
        if self.state.phase != Phase.AWAITING_POST_ACTION:
            logger.warning("`%s` is not awaiting a post-backup action, ignoring action %d", self.key, index)
            return []
        if not 0 <= index < len(self.state.pending_post_actions):
            logger.warning("`%s` has no post-backup action %d", self.key, index)
            return []

        action = self.state.pending_post_actions[index]
        self.state.pending_post_actions = []
        logger.info("running post backup action `%s` of `%s`", action.label, self.key)
        return [self._launch(RunKind.POST_ACTION, action.label, action.script, now)]

    def on_process_completed(self, run_id: str, result: ProcessResult, now: datetime) -> List[Effect]:
        if run_id != self.state.run_id:
            logger.debug("ignoring completion of unknown run %s of `%s`", run_id, self.key)
            return []

        kind = self.state.run_kind
        label = self.state.run_label or self.key
        self.state.run_id = None
        self.state.run_kind = None
        self.state.run_label = None
        self.state.run_started_at = None

        effects: List[Effect] = []
        if kind == RunKind.BACKUP:
            effects.extend(self._finish_backup(result))
        else:
            if result.success:
                logger.info("post backup action `%s` of `%s` finished", label, self.key)
            else:
                logger.warning("post backup action `%s` of `%s` %s", label, self.key, result.describe())
            self.state.phase = Phase.WAITING_FOR_INTERVAL
            effects.append(RunFinished(
                job_key=self.key,
                kind=RunKind.POST_ACTION,
                label=label,
                outcome=RunOutcome.SUCCESS if result.success else RunOutcome.FAILURE,
                message=f"{label} {result.describe()}",
                output=result.stderr or None,
            ))

        return effects + self.evaluate(now)

    def update_config(self, config: JobConfig, now: datetime) -> List[Effect]:
        """
        Adopt a reloaded definition. An in-flight run is not interrupted.
        """
        old = self.config
        self.config = config

        if self.state.last_backup is None and config.last_backup is not None:
            self.state.last_backup = config.last_backup

        if old.backup_path != config.backup_path:
            # readiness of the new path is unknown until its monitor reports
            self.state.device_ready = not config.has_device_gate
            if not self.is_active and self.state.phase.is_waiting:
                self.state.phase = (
                    Phase.WAITING_FOR_INTERVAL if self.state.device_ready else Phase.WAITING_FOR_DEVICE
                )

        if self.state.phase == Phase.AWAITING_POST_ACTION and old.post_backup_actions != config.post_backup_actions:
            self.state.pending_post_actions = list(config.post_backup_actions)
            if not self.state.pending_post_actions:
                self.state.phase = Phase.WAITING_FOR_INTERVAL

        return self.evaluate(now)

    def status(self, now: datetime) -> JobStatusRecord:
        next_due = self.next_due(now) if self.state.phase == Phase.WAITING_FOR_INTERVAL else None
        return JobStatusRecord(
            key=self.key,
            icon_name=self.config.icon_name,
            phase=self.state.phase,
            overdue=self.is_overdue(now),
            next_due=next_due,
            last_backup=self.state.last_backup,
            last_outcome=self.state.last_outcome,
            post_action_labels=[action.label for action in self.state.pending_post_actions],
            description=describe_job(self.config, self.state, next_due, now),
        )

    def _enter_waiting_for_device(self) -> None:
        if self.state.phase == Phase.AWAITING_POST_ACTION:
            logger.info("backup path of `%s` is gone, dropping post-backup actions", self.key)
            self.state.pending_post_actions = []
        logger.debug("waiting for `%s` to appear", self.config.backup_path)
        self.state.phase = Phase.WAITING_FOR_DEVICE

    def _start_backup(self, now: datetime) -> List[Effect]:
        if self.state.phase == Phase.AWAITING_POST_ACTION:
            logger.info("dropping unanswered post-backup actions of `%s`", self.key)
            self.state.pending_post_actions = []
        self.state.run_requested = False
        logger.info("running backup script `%s`", self.key)
        return [self._launch(RunKind.BACKUP, self.key, self.config.backup_script, now)]

    def _launch(self, kind: RunKind, label: str, script: str, now: datetime) -> LaunchScript:
        self.state.run_id = new_run_id()
        self.state.run_kind = kind
        self.state.run_label = label
        self.state.run_started_at = now
        self.state.phase = Phase.RUNNING if kind == RunKind.BACKUP else Phase.RUNNING_POST_ACTION
        return LaunchScript(job_key=self.key, run_id=self.state.run_id, kind=kind, label=label, script=script)

    def _finish_backup(self, result: ProcessResult) -> List[Effect]:
        message = f"{self.key} {result.describe()}"
        if not result.success:
            logger.warning("backup script `%s` %s", self.key, result.describe())
            self.state.last_outcome = RunOutcome.FAILURE
            self.state.failed_at = result.finished_at
            self.state.failure_message = message
            self.state.phase = Phase.WAITING_FOR_INTERVAL
            return [RunFinished(
                job_key=self.key,
                kind=RunKind.BACKUP,
                label=self.key,
                outcome=RunOutcome.FAILURE,
                message=message,
                output=result.stderr or None,
            )]

        logger.info("backup script `%s` finished after %s", self.key, result.duration)
        self.state.last_backup = result.finished_at
        self.state.last_outcome = RunOutcome.SUCCESS
        self.state.failed_at = None
        self.state.failure_message = None
        effects: List[Effect] = [
            PersistLastBackup(job_key=self.key, timestamp=result.finished_at),
            RunFinished(
                job_key=self.key,
                kind=RunKind.BACKUP,
                label=self.key,
                outcome=RunOutcome.SUCCESS,
                message=message,
            ),
        ]
        if self.config.post_backup_actions:
            self.state.phase = Phase.AWAITING_POST_ACTION
            self.state.pending_post_actions = list(self.config.post_backup_actions)
            effects.append(OfferPostActions(job_key=self.key, labels=self.config.post_action_labels))
        else:
            self.state.phase = Phase.WAITING_FOR_INTERVAL
        return effects
