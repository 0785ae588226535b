from datetime import timedelta

import pytest

from backup_monitor.timefmt import RoundAccuracy, RoundDirection, format_duration, parse_duration, round_duration


@pytest.mark.parametrize("text, expected", [
    ("1day", timedelta(days=1)),
    ("7days", timedelta(days=7)),
    ("7 days", timedelta(days=7)),
    ("12h 30m", timedelta(hours=12, minutes=30)),
    ("1w", timedelta(weeks=1)),
    ("500ms", timedelta(milliseconds=500)),
    ("90", timedelta(seconds=90)),
    ("2.5", timedelta(seconds=2.5)),
])
def test_parse_duration(text, expected):
    assert parse_duration(text) == expected


def test_parse_duration_passes_through_numbers_and_timedeltas():
    assert parse_duration(60) == timedelta(minutes=1)
    assert parse_duration(timedelta(hours=2)) == timedelta(hours=2)


@pytest.mark.parametrize("value", ["", "soon", "1 fortnight", "1d 2", True])
def test_parse_invalid_duration(value):
    with pytest.raises(ValueError):
        parse_duration(value)


@pytest.mark.parametrize("duration, expected", [
    (timedelta(0), "0s"),
    (timedelta(seconds=-5), "0s"),
    (timedelta(seconds=45), "45s"),
    (timedelta(days=1), "1day"),
    (timedelta(days=2, hours=3, minutes=4, seconds=5), "2days 3h 4m 5s"),
    (timedelta(hours=21), "21h"),
])
def test_format_duration(duration, expected):
    assert format_duration(duration) == expected


def test_format_duration_is_parseable():
    duration = timedelta(days=2, hours=3, minutes=4, seconds=5)
    assert parse_duration(format_duration(duration)) == duration


@pytest.mark.parametrize("duration, accuracy, direction, expected", [
    # a day or more rounds to hours
    (timedelta(days=1, hours=2, minutes=40), RoundAccuracy.SECONDS, RoundDirection.DOWN,
     (timedelta(days=1, hours=2), timedelta(minutes=40))),
    (timedelta(days=1, hours=2, minutes=40), RoundAccuracy.SECONDS, RoundDirection.UP,
     (timedelta(days=1, hours=3), timedelta(minutes=20))),
    # an hour or more rounds to minutes
    (timedelta(hours=1, minutes=5, seconds=10), RoundAccuracy.SECONDS, RoundDirection.DOWN,
     (timedelta(hours=1, minutes=5), timedelta(seconds=10))),
    # below an hour it depends on the accuracy
    (timedelta(minutes=5, seconds=10), RoundAccuracy.MINUTES, RoundDirection.UP,
     (timedelta(minutes=6), timedelta(seconds=50))),
    (timedelta(minutes=5, seconds=10), RoundAccuracy.SECONDS, RoundDirection.UP,
     (timedelta(minutes=5, seconds=10), timedelta(0))),
    (timedelta(seconds=10, milliseconds=250), RoundAccuracy.SECONDS, RoundDirection.DOWN,
     (timedelta(seconds=10), timedelta(milliseconds=250))),
])
def test_round_duration(duration, accuracy, direction, expected):
    assert round_duration(duration, accuracy, direction) == expected
