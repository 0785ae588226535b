from pathlib import Path
from typing import AsyncIterator, Callable, Protocol


class ReadinessMonitor(Protocol):
    """
    Protocol class for device readiness monitors.
    """

    def watch(self) -> AsyncIterator[bool]:
        """
        Yield the current readiness of the watched path, then every change.
        Restartable: every call starts a new, independent watch.
        """
        ...


MonitorFactory = Callable[[Path], ReadinessMonitor]
