from datetime import date, datetime

import pytest

from periods import month_period, previous_month


def test_month_period_is_half_open():
    period = month_period(2025, 3)
    assert period.start == datetime(2025, 3, 1)
    assert period.end == datetime(2025, 4, 1)
    assert period.contains(datetime(2025, 3, 1))
    assert period.contains(datetime(2025, 3, 31, 23, 59, 59))
    assert not period.contains(datetime(2025, 4, 1))


def test_month_period_december_rolls_into_next_year():
    period = month_period(2024, 12)
    assert period.start == datetime(2024, 12, 1)
    assert period.end == datetime(2025, 1, 1)


def test_month_period_rejects_out_of_range_month():
    with pytest.raises(ValueError):
        month_period(2024, 13)
    with pytest.raises(ValueError):
        month_period(2024, 0)


@pytest.mark.parametrize(
    "year, month, today, expected",
    [
        (2026, 9, date(2026, 10, 19), True),
        (2025, 12, date(2026, 1, 1), True),
        (2026, 10, date(2026, 10, 19), False),
        (2026, 11, date(2026, 10, 19), False),
        (2027, 1, date(2026, 10, 19), False),
    ],
)
def test_is_past_compares_against_current_calendar_month(year, month, today, expected):
    assert month_period(year, month).is_past(today) is expected


def test_previous_month_wraps_january():
    assert previous_month(date(2026, 1, 15)) == (2025, 12)
    assert previous_month(date(2026, 10, 1)) == (2026, 9)
