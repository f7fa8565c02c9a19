# tests/test_date_utils.py

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from date_utils import month_start, resolve_relative_date, to_date_only, week_start


def test_to_date_only_accepts_plain_and_rich_forms() -> None:
    assert to_date_only("2024-05-01") == date(2024, 5, 1)
    assert to_date_only(" 2024-05-01 ") == date(2024, 5, 1)
    assert to_date_only("2024-05-01T15:30:00.000Z") == date(2024, 5, 1)
    assert to_date_only(datetime(2024, 5, 1, 23, 59)) == date(2024, 5, 1)
    assert to_date_only(date(2024, 5, 1)) == date(2024, 5, 1)


def test_to_date_only_converts_offset_datetimes_to_user_zone() -> None:
    # Sheet cell holding local midnight in Berlin comes back as the previous day in UTC
    assert to_date_only("2024-05-26T22:00:00.000Z", "Europe/Berlin") == date(2024, 5, 27)
    assert to_date_only("2024-05-26T22:00:00.000Z", "UTC") == date(2024, 5, 26)
    aware = datetime(2024, 5, 26, 22, 0, tzinfo=timezone.utc)
    assert to_date_only(aware, "Europe/Berlin") == date(2024, 5, 27)


@pytest.mark.parametrize("value", ["", "soon", "05/01/2024", None, 42])
def test_to_date_only_rejects_garbage(value) -> None:
    with pytest.raises(ValueError):
        to_date_only(value)


def test_resolve_relative_date() -> None:
    today = date(2024, 5, 29)  # Wednesday
    assert resolve_relative_date("today", today) == "2024-05-29"
    assert resolve_relative_date("Tomorrow", today) == "2024-05-30"
    assert resolve_relative_date("yesterday", today) == "2024-05-28"
    assert resolve_relative_date("in 3 days", today) == "2024-06-01"
    assert resolve_relative_date("next week", today) == "2024-06-05"
    assert resolve_relative_date("friday", today) == "2024-05-31"
    assert resolve_relative_date("wednesday", today) == "2024-06-05"
    assert resolve_relative_date("due 2024-07-01", today) == "2024-07-01"
    assert resolve_relative_date("whenever", today) is None
    assert resolve_relative_date("", today) is None


def test_week_start_handles_sunday_without_wrapping_forward() -> None:
    assert week_start(date(2024, 6, 2)) == date(2024, 5, 27)  # Sunday
    assert week_start(date(2024, 5, 27)) == date(2024, 5, 27)  # Monday
    assert week_start(date(2024, 1, 3)) == date(2024, 1, 1)


def test_month_start() -> None:
    assert month_start(date(2024, 5, 2)) == date(2024, 5, 1)
    assert month_start(date(2024, 2, 29)) == date(2024, 2, 1)
