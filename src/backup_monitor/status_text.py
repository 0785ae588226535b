from datetime import datetime, timedelta
from typing import Optional

from backup_monitor.domain.job import JobConfig
from backup_monitor.domain.run import RunOutcome
from backup_monitor.domain.state import JobRuntimeState, Phase
from backup_monitor.timefmt import RoundAccuracy, RoundDirection, format_duration, round_duration


def _rounded(duration: timedelta) -> str:
    rounded, _ = round_duration(max(duration, timedelta(0)), RoundAccuracy.MINUTES, RoundDirection.DOWN)
    return format_duration(rounded)


def describe_job(config: JobConfig, state: JobRuntimeState, next_due: Optional[datetime], now: datetime) -> str:
    """
    Human readable, multi-line summary of a job, used as tooltip text.
    """
    if state.last_backup is not None:
        lines = [f"Last backup was {_rounded(now - state.last_backup)} ago"]
    else:
        lines = ["Never backed up before"]

    if state.last_outcome == RunOutcome.FAILURE and state.failure_message and state.phase.is_waiting:
        lines.append(f"Failed: {state.failure_message}")

    if state.phase == Phase.WAITING_FOR_INTERVAL:
        if next_due is None or next_due <= now:
            lines.append("Next backup now")
        else:
            lines.append(f"Next backup in {_rounded(next_due - now)}")
    elif state.phase == Phase.WAITING_FOR_DEVICE:
        lines.append(f"Waiting for backup folder \"{config.backup_path}\" to appear")
    elif state.phase == Phase.RUNNING:
        lines.append("Running")
    elif state.phase == Phase.AWAITING_POST_ACTION:
        lines.append("Choose a post-backup action")
    elif state.phase == Phase.RUNNING_POST_ACTION:
        lines.append(f"Running {state.run_label}")

    return "\n".join(lines)
