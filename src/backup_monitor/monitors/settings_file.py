import logging
import os
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class _SettingsFileHandler(FileSystemEventHandler):
    def __init__(self, path: Path, on_change: Callable[[], None]):
        self.path = os.fsdecode(path)
        self.on_change = on_change

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type in ("opened", "closed_no_write"):
            return
        paths = {os.fsdecode(event.src_path), os.fsdecode(getattr(event, "dest_path", "") or "")}
        if self.path in paths:
            logger.debug("settings file event: %s", event)
            self.on_change()


class SettingsFileWatcher:
    """
    Calls ``on_change`` (from a watchdog thread) whenever the settings file is
    written, replaced or recreated. The parent directory is watched so that
    editors saving through a rename are noticed too.
    """

    def __init__(self, path: Path, on_change: Callable[[], None]):
        self.path: Path = Path(path).absolute()
        self.on_change: Callable[[], None] = on_change
        self._observer: Optional[Observer] = None

    def start(self) -> None:
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(_SettingsFileHandler(self.path, self.on_change), str(self.path.parent), recursive=False)
        observer.start()
        self._observer = observer
        logger.debug("watching settings file %s", self.path)

    def stop(self) -> None:
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=1)
            self._observer = None
