import asyncio
import logging
import os
import select
import threading
from pathlib import Path
from typing import AsyncIterator, Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

PROBE_FILE_NAME = ".backup-monitor-test"
DEFAULT_DEBOUNCE = 0.5
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MOUNTS_FILE = Path("/proc/mounts")


def is_ready(path: Path) -> bool:
    """
    Check that ``path`` exists and is writable by creating and removing a
    probe file in it.
    """
    logger.debug("checking if `%s` exists and is writable", path)
    if not path.is_dir():
        return False

    probe = path / PROBE_FILE_NAME
    for attempt in range(2):
        try:
            fd = os.open(probe, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            if attempt:
                return False
            # left behind by an interrupted check
            try:
                probe.unlink()
            except OSError:
                return False
            continue
        except OSError:
            return False
        os.close(fd)
        try:
            probe.unlink()
        except OSError as e:
            logger.debug("could not remove %s: %s", probe, e)
        return True
    return False


def nearest_existing_dir(path: Path) -> Optional[Path]:
    """
    The directory whose entries change when ``path`` appears or disappears.
    """
    candidate = path.parent if path.exists() else path
    while not candidate.is_dir():
        if candidate.parent == candidate:
            return None
        candidate = candidate.parent
    return candidate


class _PokeHandler(FileSystemEventHandler):
    def __init__(self, poke: Callable[[], None], watched: Path, on_lost: Callable[[], None]):
        self.poke = poke
        self.watched = str(watched)
        self.on_lost = on_lost

    def on_any_event(self, event: FileSystemEvent) -> None:
        logger.debug("fs event: %s", event)
        if event.event_type in ("deleted", "moved") and event.src_path == self.watched:
            self.on_lost()
        self.poke()


class MountTableWatcher(threading.Thread):
    """
    Signals changes of the kernel mount table. ``/proc/mounts`` reports a
    priority event to poll(2) whenever a file system is mounted or unmounted.
    """

    def __init__(self, mounts_file: Path, poke: Callable[[], None], timeout: float = 1.0):
        super().__init__(name="mount-table-watcher", daemon=True)
        self.mounts_file = mounts_file
        self.poke = poke
        self.timeout = timeout
        self._stopped = threading.Event()

    def stop(self) -> None:
        self._stopped.set()

    def run(self) -> None:
        try:
            with open(self.mounts_file, "rb") as f:
                f.read()
                poller = select.poll()
                poller.register(f.fileno(), select.POLLPRI | select.POLLERR)
                while not self._stopped.is_set():
                    if poller.poll(self.timeout * 1000):
                        logger.debug("mounts were updated")
                        f.seek(0)
                        f.read()
                        self.poke()
        except (OSError, AttributeError) as e:
            logger.warning("cannot watch %s: %s", self.mounts_file, e)


class DeviceMonitor:
    """
    Watches a backup path and reports its readiness.

    ``watch()`` yields the current readiness first and then every change.
    Bursts of raw file system events within the debounce window result in a
    single check. If the path cannot be watched, the monitor polls instead
    and keeps trying to re-establish the watch. Probes and watch setup run in
    worker threads, never on the event loop.
    """

    def __init__(
        self,
        path: Path,
        debounce: float = DEFAULT_DEBOUNCE,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        mounts_file: Optional[Path] = DEFAULT_MOUNTS_FILE,
    ):
        self.path: Path = Path(path)
        self.debounce: float = debounce
        self.poll_interval: float = poll_interval
        self.mounts_file: Optional[Path] = mounts_file
        self._observer: Optional[Observer] = None
        self._watched: Optional[Path] = None
        self._watch_lost: bool = False

    @property
    def is_polling(self) -> bool:
        return self._observer is None

    async def watch(self) -> AsyncIterator[bool]:
        loop = asyncio.get_running_loop()
        wakeup = asyncio.Event()

        def poke() -> None:
            loop.call_soon_threadsafe(wakeup.set)

        mounts_watcher = None
        if self.mounts_file is not None and self.mounts_file.exists():
            mounts_watcher = MountTableWatcher(self.mounts_file, poke)
            mounts_watcher.start()

        try:
            await asyncio.to_thread(self._ensure_watch, poke)
            last = await asyncio.to_thread(is_ready, self.path)
            yield last

            while True:
                timeout = self.poll_interval if self.is_polling else None
                try:
                    await asyncio.wait_for(wakeup.wait(), timeout)
                except asyncio.TimeoutError:
                    pass
                else:
                    await asyncio.sleep(self.debounce)
                wakeup.clear()

                await asyncio.to_thread(self._ensure_watch, poke)
                ready = await asyncio.to_thread(is_ready, self.path)
                if ready != last:
                    logger.info("`%s` is %s", self.path, "ready" if ready else "not ready")
                    last = ready
                    yield ready
        finally:
            await asyncio.to_thread(self._stop_watch)
            if mounts_watcher is not None:
                mounts_watcher.stop()

    def _ensure_watch(self, poke: Callable[[], None]) -> None:
        target = nearest_existing_dir(self.path)
        healthy = self._observer is not None and self._observer.is_alive() and not self._watch_lost
        if healthy and target == self._watched:
            return

        self._stop_watch()
        if target is None:
            logger.warning("no directory to watch for `%s`, polling every %ss", self.path, self.poll_interval)
            return

        observer = Observer()
        handler = _PokeHandler(poke, target, self._mark_lost)
        try:
            observer.schedule(handler, str(target), recursive=False)
            observer.start()
        except OSError as e:
            observer.stop()
            logger.warning("cannot watch `%s` (%s), polling every %ss", target, e, self.poll_interval)
            return

        logger.debug("watching `%s` for `%s`", target, self.path)
        self._observer = observer
        self._watched = target
        self._watch_lost = False

    def _mark_lost(self) -> None:
        self._watch_lost = True

    def _stop_watch(self) -> None:
        observer = self._observer
        self._observer = None
        self._watched = None
        if observer is not None:
            observer.stop()
            if observer.is_alive():
                observer.join(timeout=1)
