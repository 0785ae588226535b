import argparse
import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import List, Optional

from backup_monitor.config import data_dir, default_database_url, load_settings, settings_file_path
from backup_monitor.domain.events import ReloadRequested
from backup_monitor.errors import ConfigError
from backup_monitor.executors.process import ProcessRunner
from backup_monitor.monitors.settings_file import SettingsFileWatcher
from backup_monitor.presenters.log import LoggingPresenter
from backup_monitor.scheduler import Scheduler
from backup_monitor.storages.sqlalchemy import SqlAlchemyStorage

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="backup-monitor", description="Run backup scripts on a schedule.")
    parser.add_argument("--config", type=Path, default=None,
                        help=f"settings file (default: {settings_file_path()})")
    parser.add_argument("--database", default=None,
                        help=f"SQLAlchemy URL of the last backup database (default: {default_database_url()})")
    parser.add_argument("--log-level", default=os.environ.get("BACKUP_MONITOR_LOG_LEVEL", "info"),
                        choices=["debug", "info", "warning", "error"],
                        help="log level (default: info, or $BACKUP_MONITOR_LOG_LEVEL)")
    return parser.parse_args(argv)


async def run(settings_path: Path, database_url: Optional[str] = None) -> None:
    settings = load_settings(settings_path)

    if database_url is None:
        data_dir().mkdir(parents=True, exist_ok=True)
        database_url = default_database_url()
    storage = SqlAlchemyStorage(database_url)
    await storage.create_tables()

    scheduler = Scheduler(
        settings,
        runner=ProcessRunner(),
        storage=storage,
        presenter=LoggingPresenter(settings.title),
        loader=lambda: load_settings(settings_path),
    )
    watcher = SettingsFileWatcher(settings_path, lambda: scheduler.post_threadsafe(ReloadRequested()))

    stopped = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stopped.set)
        except NotImplementedError:
            pass

    await scheduler.start()
    watcher.start()
    try:
        await stopped.wait()
    finally:
        watcher.stop()
        await scheduler.stop()
        await storage.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        asyncio.run(run(args.config or settings_file_path(), args.database))
    except ConfigError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0
