import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from backup_monitor.config import Settings
from backup_monitor.domain.effects import Effect, LaunchScript, OfferPostActions, PersistLastBackup, RunFinished
from backup_monitor.domain.events import (
    Event, ExecutePostAction, ProcessCompleted, ReadinessChanged, ReloadRequested, RunNow, Tick,
)
from backup_monitor.domain.job import JobConfig
from backup_monitor.domain.run import ProcessResult
from backup_monitor.domain.state import AggregateStatus, JobStatusRecord, Phase
from backup_monitor.errors import ConfigError, UnknownJobError
from backup_monitor.executors.protocol import ScriptRunner
from backup_monitor.machine import JobStateMachine
from backup_monitor.monitors.device import DeviceMonitor
from backup_monitor.monitors.protocol import MonitorFactory, ReadinessMonitor
from backup_monitor.presenters.protocol import Presenter
from backup_monitor.storages.protocol import Storage

logger = logging.getLogger(__name__)

MIN_SLEEP_SECONDS = 1.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Scheduler:
    """
    Owns the state machines of all configured jobs and feeds them events.

    Every event goes through one asyncio queue and is handled completely
    before the next one is taken, so state machines are never entered
    concurrently. Device monitors and script runs only ever report back by
    putting events on that queue.
    """

    def __init__(
        self,
        settings: Settings,
        runner: ScriptRunner,
        storage: Storage,
        presenter: Presenter,
        loader: Optional[Callable[[], Settings]] = None,
        monitor_factory: Optional[MonitorFactory] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.settings: Settings = settings
        self.runner: ScriptRunner = runner
        self.storage: Storage = storage
        self.presenter: Presenter = presenter
        self.loader: Optional[Callable[[], Settings]] = loader
        self.monitor_factory: MonitorFactory = monitor_factory or DeviceMonitor
        self.clock: Callable[[], datetime] = clock

        self.machines: Dict[str, JobStateMachine] = {}
        self.queue: asyncio.Queue = asyncio.Queue()
        self.is_running: bool = False
        self.degraded: bool = False
        self.last_reminder: Optional[datetime] = None

        self.loop_task: Optional[asyncio.Task] = None
        self.timer_task: Optional[asyncio.Task] = None
        self.monitor_tasks: Dict[str, asyncio.Task] = {}
        self.run_tasks: Dict[str, asyncio.Task] = {}
        self.write_tasks: Set[asyncio.Task] = set()
        self._replan: asyncio.Event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def start(self):
        """
        Load the last backup times, create the jobs and start the event loop.
        """
        if self.is_running:
            return
        self._loop = asyncio.get_running_loop()

        try:
            last_backups = await self.storage.get_last_backups()
        except Exception as e:
            logger.warning("could not read last backup times: %s", e)
            last_backups = {}
            self.degraded = True

        for config in self.settings.scripts:
            self._add_job(config, last_backups.get(config.key))

        self.is_running = True
        self.loop_task = asyncio.create_task(self._event_loop())
        self.timer_task = asyncio.create_task(self._timer_loop())
        self.post(Tick())
        logger.info("Scheduler started with %d jobs.", len(self.machines))

    async def stop(self):
        """
        Stop the event loop and all monitors. Running scripts are not killed,
        their results are no longer collected.
        """
        if not self.is_running:
            return
        self.is_running = False

        tasks = [task for task in (self.loop_task, self.timer_task) if task]
        tasks += list(self.monitor_tasks.values()) + list(self.run_tasks.values())
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if self.write_tasks:
            await asyncio.gather(*self.write_tasks, return_exceptions=True)

        self.monitor_tasks.clear()
        self.run_tasks.clear()
        self.loop_task = None
        self.timer_task = None
        logger.info("Scheduler stopped.")

    def post(self, event: Event) -> None:
        """
        Enqueue an event. Must be called from the scheduler's event loop.
        """
        self.queue.put_nowait(event)

    def post_threadsafe(self, event: Event) -> None:
        """
        Enqueue an event from any thread.
        """
        if self._loop is None:
            raise RuntimeError("Scheduler has not been started")
        self._loop.call_soon_threadsafe(self.queue.put_nowait, event)

    def run_now(self, job_key: str) -> None:
        self.post(RunNow(job_key=job_key))

    def execute_post_action(self, job_key: str, action_index: int) -> None:
        self.post(ExecutePostAction(job_key=job_key, action_index=action_index))

    def reload(self) -> None:
        self.post(ReloadRequested())

    async def wait_idle(self) -> None:
        """
        Wait until every event posted so far has been handled.
        """
        await self.queue.join()

    def machine(self, job_key: str) -> JobStateMachine:
        try:
            return self.machines[job_key]
        except KeyError:
            raise UnknownJobError(job_key) from None

    def statuses(self) -> List[JobStatusRecord]:
        now = self.clock()
        return [machine.status(now) for machine in self.machines.values()]

    def aggregate(self) -> AggregateStatus:
        return AggregateStatus.from_statuses(self.statuses(), self.degraded)

    async def dispatch(self, event: Event) -> None:
        """
        Handle one event: route it to its job, carry out the resulting effects
        and publish the new status.
        """
        now = self.clock()
        effects: List[Effect] = []

        if isinstance(event, Tick):
            for machine in self.machines.values():
                effects += machine.evaluate(now)

        elif isinstance(event, ReadinessChanged):
            machine = self.machines.get(event.job_key)
            if machine is None or (event.path is not None and event.path != machine.config.backup_path):
                logger.debug("ignoring stale readiness report for `%s`", event.job_key)
                return
            effects = machine.on_readiness_changed(event.ready, now)

        elif isinstance(event, ProcessCompleted):
            self.run_tasks.pop(event.run_id, None)
            machine = self.machines.get(event.job_key)
            if machine is None:
                logger.info("discarding result of removed job `%s`: %s", event.job_key, event.result.describe())
                return
            effects = machine.on_process_completed(event.run_id, event.result, now)

        elif isinstance(event, RunNow):
            try:
                effects = self.machine(event.job_key).run_now(now)
            except UnknownJobError as e:
                logger.warning("cannot run: %s", e)
                return

        elif isinstance(event, ExecutePostAction):
            try:
                effects = self.machine(event.job_key).execute_post_action(event.action_index, now)
            except UnknownJobError as e:
                logger.warning("cannot execute post-backup action: %s", e)
                return

        elif isinstance(event, ReloadRequested):
            effects = await self._reload(now)

        else:
            raise TypeError(f"Unsupported event: {event!r}")

        self._apply(effects)
        self._publish(now)

    async def apply_settings(self, settings: Settings, now: Optional[datetime] = None) -> List[Effect]:
        """
        Switch to new settings. Removed jobs are forgotten (a running script
        finishes but its result is discarded), added jobs start fresh and kept
        jobs adopt their new definition.
        """
        now = now or self.clock()
        new_configs = {config.key: config for config in settings.scripts}
        self.settings = settings
        effects: List[Effect] = []

        for key in [key for key in self.machines if key not in new_configs]:
            logger.info("removing job `%s`", key)
            machine = self.machines.pop(key)
            self._stop_monitor(key)
            if machine.is_active:
                logger.info("`%s` is still running, its result will be discarded", key)

        last_backups: Dict[str, datetime] = {}
        if any(key not in self.machines for key in new_configs):
            try:
                last_backups = await self.storage.get_last_backups()
            except Exception as e:
                logger.warning("could not read last backup times: %s", e)

        for config in settings.scripts:
            machine = self.machines.get(config.key)
            if machine is None:
                logger.info("adding job `%s`", config.key)
                machine = self._add_job(config, last_backups.get(config.key))
                effects += machine.evaluate(now)
                continue

            path_changed = machine.config.backup_path != config.backup_path
            machine.retry_interval = settings.retry_interval
            effects += machine.update_config(config, now)
            if path_changed:
                self._stop_monitor(config.key)
                if config.backup_path is not None:
                    self._start_monitor(config.key, config.backup_path)

        self.machines = {key: self.machines[key] for key in new_configs}
        return effects

    async def _reload(self, now: datetime) -> List[Effect]:
        if self.loader is None:
            logger.warning("reload requested but no settings loader is configured")
            return []
        logger.info("reloading settings")
        try:
            settings = await asyncio.to_thread(self.loader)
        except ConfigError as e:
            logger.warning("rejecting new settings, keeping the previous ones: %s", e)
            return []
        return await self.apply_settings(settings, now)

    def _add_job(self, config: JobConfig, last_backup: Optional[datetime]) -> JobStateMachine:
        machine = JobStateMachine(config, last_backup, retry_interval=self.settings.retry_interval)
        self.machines[config.key] = machine
        if config.backup_path is not None:
            self._start_monitor(config.key, config.backup_path)
        return machine

    def _start_monitor(self, job_key: str, path: Path) -> None:
        monitor = self.monitor_factory(path)
        self.monitor_tasks[job_key] = asyncio.create_task(self._watch_device(job_key, path, monitor))

    def _stop_monitor(self, job_key: str) -> None:
        task = self.monitor_tasks.pop(job_key, None)
        if task is not None and not task.done():
            task.cancel()

    async def _watch_device(self, job_key: str, path: Path, monitor: ReadinessMonitor) -> None:
        try:
            async for ready in monitor.watch():
                self.post(ReadinessChanged(job_key=job_key, ready=ready, path=path))
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("device monitor for `%s` failed", job_key)

    def _apply(self, effects: List[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, LaunchScript):
                self._launch(effect)
            elif isinstance(effect, PersistLastBackup):
                task = asyncio.create_task(self._persist(effect))
                self.write_tasks.add(task)
                task.add_done_callback(self.write_tasks.discard)
            elif isinstance(effect, OfferPostActions):
                self.presenter.offer_post_actions(effect.job_key, effect.labels)
            elif isinstance(effect, RunFinished):
                self.presenter.job_finished(effect.job_key, effect.kind, effect.label, effect.outcome, effect.message)
            else:
                raise TypeError(f"Unsupported effect: {effect!r}")

    def _launch(self, effect: LaunchScript) -> None:
        job_key = effect.job_key
        run_id = effect.run_id

        def _on_complete(result: ProcessResult):
            self.post(ProcessCompleted(job_key=job_key, run_id=run_id, result=result))

        self.run_tasks[run_id] = self.runner.launch(effect.script, _on_complete)
        self.presenter.job_started(job_key, effect.kind, effect.label)

    async def _persist(self, effect: PersistLastBackup) -> None:
        try:
            await self.storage.set_last_backup(effect.job_key, effect.timestamp)
        except Exception as e:
            logger.warning("could not save last backup of `%s`: %s", effect.job_key, e)
            changed = not self.degraded
            self.degraded = True
        else:
            changed = self.degraded
            self.degraded = False
        if changed and self.is_running:
            self._publish(self.clock())

    def _publish(self, now: datetime) -> None:
        statuses = [machine.status(now) for machine in self.machines.values()]
        aggregate = AggregateStatus.from_statuses(statuses, self.degraded)
        self.presenter.publish(statuses, aggregate)

        overdue = [status.key for status in statuses if status.overdue]
        if overdue and (self.last_reminder is None or now >= self.last_reminder + self.settings.reminder_interval):
            self.presenter.show_reminder(overdue)
            self.last_reminder = now

    def _seconds_until_wakeup(self, now: datetime) -> float:
        wakeups = [now + self.settings.tick_interval]
        any_overdue = False
        for machine in self.machines.values():
            if machine.is_active:
                continue
            if machine.phase == Phase.WAITING_FOR_INTERVAL:
                wakeups.append(machine.next_due(now))
            overdue_at = machine.overdue_at()
            if overdue_at is not None and overdue_at > now:
                wakeups.append(overdue_at)
            any_overdue = any_overdue or machine.is_overdue(now)
        if any_overdue and self.last_reminder is not None:
            wakeups.append(self.last_reminder + self.settings.reminder_interval)
        return max((min(wakeups) - now).total_seconds(), MIN_SLEEP_SECONDS)

    async def _event_loop(self):
        while True:
            event = await self.queue.get()
            try:
                await self.dispatch(event)
            except Exception:
                logger.exception("Error handling %s event", event.type.value)
            finally:
                self.queue.task_done()
                self._replan.set()

    async def _timer_loop(self):
        while self.is_running:
            delay = self._seconds_until_wakeup(self.clock())
            self._replan.clear()
            try:
                await asyncio.wait_for(self._replan.wait(), delay)
            except asyncio.TimeoutError:
                self.post(Tick())
