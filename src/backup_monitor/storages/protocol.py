from datetime import datetime
from typing import Dict, Protocol


class Storage(Protocol):
    async def get_last_backups(self) -> Dict[str, datetime]:
        """Retrieve the last successful backup of every job that has one."""
        ...

    async def set_last_backup(self, job_key: str, timestamp: datetime) -> None:
        """Durably record the last successful backup of a job."""
        ...
