class BackupMonitorError(Exception):
    """
    Base class for all errors raised by backup_monitor.
    """


class ConfigError(BackupMonitorError):
    """
    Raised when the settings file cannot be read, parsed or validated.
    A reload failing with this error leaves the previous settings active.
    """


class UnknownJobError(BackupMonitorError, KeyError):
    """
    Raised when a command names a job key that is not configured.
    """

    def __init__(self, job_key: str):
        super().__init__(job_key)
        self.job_key = job_key

    def __str__(self) -> str:
        return f"No job configured with name '{self.job_key}'"
