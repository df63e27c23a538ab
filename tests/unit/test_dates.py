from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from booking_engine.utils.dates import (
    at_local_minute,
    ensure_utc,
    hours_between,
    local_day_bounds,
    minutes_to_time,
    resolve_timezone,
    time_to_minutes,
)


def test_ensure_utc():
    naive = datetime(2026, 3, 2, 10, 0)
    offset = datetime(2026, 3, 2, 5, 0, tzinfo=timezone(timedelta(hours=-5)))

    assert ensure_utc(naive) == datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset) == datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)
    assert ensure_utc(offset).utcoffset() == timedelta(0)
    assert ensure_utc(None) is None


def test_resolve_timezone():
    assert resolve_timezone("Asia/Kolkata") == ZoneInfo("Asia/Kolkata")
    assert resolve_timezone("Not/AZone") == ZoneInfo("UTC")
    assert resolve_timezone(None) == ZoneInfo("UTC")


def test_minutes_round_trip_format():
    assert time_to_minutes(time(9, 45)) == 585
    assert minutes_to_time(585) == "09:45"
    assert minutes_to_time(0) == "00:00"


def test_local_day_bounds_across_dst():
    # Clocks go forward in New York on 8 March 2026
    start, end = local_day_bounds(date(2026, 3, 8), ZoneInfo("America/New_York"))

    assert start == datetime(2026, 3, 8, 5, 0, tzinfo=timezone.utc)
    assert end - start == timedelta(hours=23)


def test_at_local_minute():
    kolkata = ZoneInfo("Asia/Kolkata")

    assert at_local_minute(date(2026, 3, 2), 600, kolkata) == datetime(
        2026, 3, 2, 4, 30, tzinfo=timezone.utc
    )


def test_hours_between():
    start = datetime(2026, 3, 2, 8, 0, tzinfo=timezone.utc)

    assert hours_between(start, start + timedelta(minutes=90)) == 1.5
    assert hours_between(start, start - timedelta(hours=2)) == -2
