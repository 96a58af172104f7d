"""
Tests for timezone helpers
"""
from datetime import date, datetime, time, timedelta, timezone

from attendance_api.utils.datetime_utils import (
    at_local_time,
    business_date,
    ensure_utc,
    iso_local,
    month_end,
    week_start,
)
from attendance_api.utils.geo import distance_meters
from attendance_api.utils.text import clean_text

TZ = "Asia/Kathmandu"


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2026, 3, 2, 4, 0)
    assert ensure_utc(naive) == datetime(2026, 3, 2, 4, 0, tzinfo=timezone.utc)
    assert ensure_utc(None) is None


def test_business_date_crosses_midnight():
    assert business_date(datetime(2026, 3, 2, 18, 30, tzinfo=timezone.utc), TZ) == date(2026, 3, 3)
    assert business_date(datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc), TZ) == date(2026, 3, 2)


def test_at_local_time():
    assert at_local_time(date(2026, 3, 2), time(9, 0), TZ) == datetime(2026, 3, 2, 3, 15, tzinfo=timezone.utc)


def test_at_local_time_follows_dst():
    # clocks jump from 02:00 to 03:00 on 2026-03-08 in New York
    start = at_local_time(date(2026, 3, 8), time(0, 0), "America/New_York")
    end = at_local_time(date(2026, 3, 9), time(0, 0), "America/New_York")
    assert end - start == timedelta(hours=23)


def test_iso_formats():
    dt = datetime(2026, 3, 2, 3, 15, tzinfo=timezone.utc)
    assert iso_local(dt, TZ) == "2026-03-02T09:00:00+05:45"
    assert iso_local(None, TZ) is None


def test_week_start_is_sunday():
    assert week_start(date(2026, 3, 4)) == date(2026, 3, 1)
    assert week_start(date(2026, 3, 1)) == date(2026, 3, 1)
    assert week_start(date(2026, 3, 7)) == date(2026, 3, 1)


def test_month_end():
    assert month_end(2026, 2) == date(2026, 2, 28)
    assert month_end(2028, 2) == date(2028, 2, 29)
    assert month_end(2026, 12) == date(2026, 12, 31)


def test_distance_meters():
    assert distance_meters(27.7172, 85.3240, 27.7172, 85.3240) == 0
    # one degree of latitude is ~111 km
    assert 111000 < distance_meters(27.0, 85.0, 28.0, 85.0) < 111400


def test_clean_text():
    assert clean_text(None, 10) is None
    assert clean_text(" \t\n ", 10) is None
    assert clean_text("a\x07b   c", 10) == "ab c"
    assert clean_text("abcdefghijkl", 5) == "abcde"
