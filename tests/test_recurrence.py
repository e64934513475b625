# -*- coding: utf-8 -*-
from datetime import date

import pytest

from pm.entities import IntervalType
from pm.errors import InvalidRecurrence
from pm.recurrence import advance, horizon, occurrences, validate_recurrence


@pytest.mark.parametrize('interval_type, value, expected', [
    ('daily', 3, date(2024, 1, 18)),
    ('weekly', 2, date(2024, 1, 29)),
    ('monthly', 1, date(2024, 2, 15)),
    ('quarterly', 1, date(2024, 4, 15)),
    ('yearly', 2, date(2026, 1, 15)),
])
def test_advance_steps(interval_type, value, expected):
    assert advance(date(2024, 1, 15), interval_type, value) == expected


def test_month_end_clamps_to_last_day():
    assert advance(date(2024, 1, 31), 'monthly', 1) == date(2024, 2, 29)
    assert advance(date(2023, 1, 31), 'monthly', 1) == date(2023, 2, 28)
    assert advance(date(2024, 2, 29), 'yearly', 1) == date(2025, 2, 28)


def test_monthly_occurrences_over_six_months():
    start = date(2024, 1, 15)
    dates = list(occurrences(start, IntervalType.MONTHLY, 1, horizon(start, 6)))
    assert dates == [
        date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15),
        date(2024, 4, 15), date(2024, 5, 15), date(2024, 6, 15),
    ]


def test_occurrences_anchor_to_start_date():
    start = date(2024, 1, 31)
    dates = list(occurrences(start, 'monthly', 1, horizon(start, 4)))
    assert dates == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30)]


def test_daily_occurrences_use_half_open_window():
    start = date(2024, 2, 27)
    dates = list(occurrences(start, 'daily', 1, date(2024, 3, 1)))
    assert dates == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29)]


@pytest.mark.parametrize('interval_type, value', [
    ('hourly', 1),
    ('monthly', 0),
    ('weekly', -2),
    ('daily', 1.5),
    ('daily', True),
])
def test_invalid_recurrence_is_rejected(interval_type, value):
    with pytest.raises(InvalidRecurrence) as excinfo:
        validate_recurrence(interval_type, value)
    assert excinfo.value.field in ('interval_type', 'interval_value')
