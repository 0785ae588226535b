from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import Column, DateTime, String
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.orm import declarative_base, sessionmaker

from backup_monitor.storages.protocol import Storage

Base = declarative_base()


class BackupModel(Base):
    __tablename__ = 'backups'

    job_key = Column(String, primary_key=True)
    last_backup = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the timezone, values are always written in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SqlAlchemyStorage(Storage):
    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url)
        self.async_session = sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self):
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        await self.engine.dispose()

    async def get_last_backups(self) -> Dict[str, datetime]:
        async with self.async_session() as session:
            result = await session.execute(select(BackupModel))
            return {db_backup.job_key: _as_utc(db_backup.last_backup) for db_backup in result.scalars()}

    async def set_last_backup(self, job_key: str, timestamp: datetime) -> None:
        timestamp = _as_utc(timestamp)
        async with self.async_session() as session:
            result = await session.execute(select(BackupModel).filter_by(job_key=job_key))
            db_backup = result.scalar_one_or_none()
            if db_backup:
                db_backup.last_backup = timestamp
                db_backup.updated_at = datetime.now(timezone.utc)
            else:
                session.add(BackupModel(
                    job_key=job_key,
                    last_backup=timestamp,
                    updated_at=datetime.now(timezone.utc),
                ))
            await session.commit()


class InMemoryStorage(SqlAlchemyStorage):
    def __init__(self):
        super().__init__("sqlite+aiosqlite:///:memory:")
