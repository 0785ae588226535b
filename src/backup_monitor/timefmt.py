import re
from datetime import timedelta
from enum import Enum
from typing import Tuple, Union

_UNITS = {
    "ms": timedelta(milliseconds=1),
    "msec": timedelta(milliseconds=1),
    "s": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "secs": timedelta(seconds=1),
    "second": timedelta(seconds=1),
    "seconds": timedelta(seconds=1),
    "m": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "mins": timedelta(minutes=1),
    "minute": timedelta(minutes=1),
    "minutes": timedelta(minutes=1),
    "h": timedelta(hours=1),
    "hr": timedelta(hours=1),
    "hrs": timedelta(hours=1),
    "hour": timedelta(hours=1),
    "hours": timedelta(hours=1),
    "d": timedelta(days=1),
    "day": timedelta(days=1),
    "days": timedelta(days=1),
    "w": timedelta(weeks=1),
    "week": timedelta(weeks=1),
    "weeks": timedelta(weeks=1),
    "M": timedelta(days=30.44),
    "month": timedelta(days=30.44),
    "months": timedelta(days=30.44),
    "y": timedelta(days=365.25),
    "year": timedelta(days=365.25),
    "years": timedelta(days=365.25),
}

_TOKEN = re.compile(r"\s*(\d+)\s*([A-Za-z]+)\s*")


class RoundAccuracy(str, Enum):
    MINUTES = "minutes"
    SECONDS = "seconds"


class RoundDirection(str, Enum):
    UP = "up"
    DOWN = "down"


def parse_duration(value: Union[str, int, float, timedelta]) -> timedelta:
    """
    Parse a human readable duration such as ``1day``, ``7 days`` or ``12h 30m``.

    Plain numbers are interpreted as seconds.

    Raises:
        ValueError: If the value is not a valid duration.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)

    text = value.strip()
    if not text:
        raise ValueError("Duration must not be empty")
    if re.fullmatch(r"\d+(\.\d+)?", text):
        return timedelta(seconds=float(text))

    total = timedelta(0)
    position = 0
    while position < len(text):
        match = _TOKEN.match(text, position)
        if not match:
            raise ValueError(f"Invalid duration: {value!r}")
        amount, unit = match.groups()
        if unit not in _UNITS:
            raise ValueError(f"Unknown time unit '{unit}' in duration {value!r}")
        total += int(amount) * _UNITS[unit]
        position = match.end()
    return total


def format_duration(duration: timedelta) -> str:
    """
    Format a duration as ``2days 3h 4m 5s``, omitting zero components.
    """
    seconds = int(duration.total_seconds())
    if seconds <= 0:
        return "0s"

    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)

    parts = []
    if days:
        parts.append(f"{days}day" if days == 1 else f"{days}days")
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds:
        parts.append(f"{seconds}s")
    return " ".join(parts)


def round_duration(
    duration: timedelta,
    accuracy: RoundAccuracy = RoundAccuracy.MINUTES,
    direction: RoundDirection = RoundDirection.DOWN,
) -> Tuple[timedelta, timedelta]:
    """
    Round a duration for display.

    Durations of a day or more are rounded to hours, durations of an hour or
    more (or any duration with minute accuracy) to minutes, everything else to
    seconds.

    Returns:
        Tuple[timedelta, timedelta]: The rounded duration and the remainder,
            i.e. how far the duration is from the rounding boundary in the
            chosen direction.
    """
    if duration >= timedelta(days=1):
        step = timedelta(hours=1)
    elif duration >= timedelta(hours=1) or accuracy == RoundAccuracy.MINUTES:
        step = timedelta(minutes=1)
    else:
        step = timedelta(seconds=1)

    whole = duration // step
    rest = duration - whole * step
    if rest == timedelta(0):
        return duration, timedelta(0)
    if direction == RoundDirection.UP:
        return (whole + 1) * step, step - rest
    return whole * step, rest
