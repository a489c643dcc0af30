# Overview: Pytest coverage for timestamp parsing used by report filters.

from datetime import datetime

import pytest

from shopstock.time_utils import parse_iso_datetime, to_utc_z


def test_offsets_are_normalized_to_naive_utc():
    assert parse_iso_datetime("2026-03-01T09:30:00+07:00") == datetime(2026, 3, 1, 2, 30)
    assert parse_iso_datetime("2026-03-01T09:30:00Z") == datetime(2026, 3, 1, 9, 30)


def test_bare_dates_cover_whole_day():
    assert parse_iso_datetime("2026-03-01") == datetime(2026, 3, 1)
    assert parse_iso_datetime("2026-03-01", end_of_day=True) == datetime(2026, 3, 1, 23, 59, 59, 999999)


@pytest.mark.parametrize("value", [None, "", "   "])
def test_blank_is_none(value):
    assert parse_iso_datetime(value) is None


@pytest.mark.parametrize("value", ["yesterday", "2026-13-01", "01/03/2026"])
def test_garbage_raises(value):
    with pytest.raises(ValueError):
        parse_iso_datetime(value)


def test_to_utc_z_drops_microseconds():
    assert to_utc_z(datetime(2026, 3, 1, 2, 30, 5, 123456)) == "2026-03-01T02:30:05Z"
