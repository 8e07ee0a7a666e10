from datetime import date, datetime, time, timedelta

import pytest

from salonbook.domain.scheduling.time_calculator import (
    format_time,
    get_zone,
    local_datetime,
    local_now,
    minutes_to_time,
    parse_time,
    time_to_minutes,
)
from salonbook.errors import ValidationError


def test_minutes_roundtrip_for_typical_times():
    assert time_to_minutes(time(9, 30)) == 570
    assert minutes_to_time(570) == time(9, 30)
    assert minutes_to_time(0) == time(0, 0)


def test_minutes_to_time_rejects_midnight_crossing():
    with pytest.raises(ValidationError):
        minutes_to_time(24 * 60)
    with pytest.raises(ValidationError):
        minutes_to_time(-5)


@pytest.mark.parametrize(
    "raw,expected",
    [("09:05", time(9, 5)), ("18:00:00", time(18, 0)), (" 7:30 ", time(7, 30))],
)
def test_parse_time_accepts_clock_formats(raw, expected):
    assert parse_time(raw) == expected


@pytest.mark.parametrize("raw", ["9am", "25:00", "10", "", "10:61"])
def test_parse_time_rejects_garbage(raw):
    with pytest.raises(ValidationError):
        parse_time(raw)


def test_format_time_pads_hours():
    assert format_time(time(7, 5)) == "07:05"


def test_unknown_timezone_is_a_validation_error():
    with pytest.raises(ValidationError):
        get_zone("Mars/Olympus_Mons")


def test_local_datetime_uses_provider_offset():
    winter = local_datetime(date(2030, 1, 7), time(10, 0), "Europe/Kyiv")
    assert winter.utcoffset() == timedelta(hours=2)


def test_local_now_requires_aware_instant():
    with pytest.raises(ValueError):
        local_now(datetime(2030, 1, 7, 10, 0), "UTC")
