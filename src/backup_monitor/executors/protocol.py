import asyncio
from typing import Callable, Protocol

from backup_monitor.domain.run import ProcessResult


class ScriptRunner(Protocol):
    """
    Protocol class for script runners.
    """

    def launch(self, script: str, on_complete: Callable[[ProcessResult], None]) -> asyncio.Task:
        """
        Start the given script without waiting for it.

        Args:
            script (str): The script body to execute.
            on_complete (Callable[[ProcessResult], None]): Called exactly once,
                on the event loop, when the script has finished or could not
                be started.

        Returns:
            asyncio.Task: Handle of the running invocation.
        """
        ...

    async def run(self, script: str) -> ProcessResult:
        """
        Execute the given script and wait for its completion.
        """
        ...
