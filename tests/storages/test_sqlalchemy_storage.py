from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from backup_monitor.storages.sqlalchemy import InMemoryStorage, SqlAlchemyStorage


@pytest_asyncio.fixture(scope="function")
async def sqlite_storage():
    storage = InMemoryStorage()
    await storage.create_tables()
    yield storage
    await storage.close()


@pytest.mark.asyncio
async def test_no_last_backups(sqlite_storage: SqlAlchemyStorage):
    assert await sqlite_storage.get_last_backups() == {}


@pytest.mark.asyncio
async def test_set_and_get_last_backup(sqlite_storage: SqlAlchemyStorage):
    timestamp = datetime(2024, 10, 24, 20, 0, 5, tzinfo=timezone.utc)

    await sqlite_storage.set_last_backup("Backup", timestamp)

    retrieved = (await sqlite_storage.get_last_backups())["Backup"]
    assert retrieved == timestamp
    assert retrieved.tzinfo is not None


@pytest.mark.asyncio
async def test_update_last_backup(sqlite_storage: SqlAlchemyStorage):
    first = datetime(2024, 10, 24, 20, 0, tzinfo=timezone.utc)
    second = first + timedelta(days=1)

    await sqlite_storage.set_last_backup("Backup", first)
    await sqlite_storage.set_last_backup("Backup", second)

    assert await sqlite_storage.get_last_backups() == {"Backup": second}


@pytest.mark.asyncio
async def test_timestamps_are_stored_in_utc(sqlite_storage: SqlAlchemyStorage):
    local = datetime(2024, 10, 24, 22, 0, tzinfo=timezone(timedelta(hours=2)))

    await sqlite_storage.set_last_backup("Backup", local)

    retrieved = (await sqlite_storage.get_last_backups())["Backup"]
    assert retrieved == local
    assert retrieved.utcoffset() == timedelta(0)


@pytest.mark.asyncio
async def test_get_last_backups(sqlite_storage: SqlAlchemyStorage):
    timestamp = datetime(2024, 10, 24, 20, 0, tzinfo=timezone.utc)
    await sqlite_storage.set_last_backup("Home", timestamp)
    await sqlite_storage.set_last_backup("Photos", timestamp - timedelta(days=3))

    assert await sqlite_storage.get_last_backups() == {
        "Home": timestamp,
        "Photos": timestamp - timedelta(days=3),
    }


@pytest.mark.asyncio
async def test_last_backup_survives_reopening(tmp_path: Path):
    db_url = f"sqlite+aiosqlite:///{tmp_path / 'backup-monitor.db'}"
    timestamp = datetime(2024, 10, 24, 20, 0, tzinfo=timezone.utc)

    storage = SqlAlchemyStorage(db_url)
    await storage.create_tables()
    await storage.set_last_backup("Backup", timestamp)
    await storage.close()

    reopened = SqlAlchemyStorage(db_url)
    await reopened.create_tables()
    try:
        assert await reopened.get_last_backups() == {"Backup": timestamp}
    finally:
        await reopened.close()
