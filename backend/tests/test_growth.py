"""
Tests for period-over-period growth.
"""
from datetime import date, datetime

import pytest

from services.statistics.access_scope import Scope
from services.statistics.growth import (
    compare_periods,
    growth_percentage,
    previous_window,
    trend_of,
)
from services.statistics.periods import PeriodWindow, resolve_period

ALL = Scope(unrestricted=True)


class TestGrowthPercentage:

    @pytest.mark.parametrize("current, previous, expected", [
        (0, 0, 0.0),        # nothing both times
        (5, 0, 100.0),      # zero baseline never divides
        (15, 10, 50.0),
        (5, 10, -50.0),
        (10, 10, 0.0),
        (1, 3, -66.7),      # one decimal
        (None, None, 0.0),
    ])
    def test_growth(self, current, previous, expected):
        assert growth_percentage(current, previous) == expected

    @pytest.mark.parametrize("growth, trend", [
        (12.5, "up"),
        (-0.1, "down"),
        (0.0, "stable"),
    ])
    def test_trend(self, growth, trend):
        assert trend_of(growth) == trend


class TestPreviousWindow:

    def test_previous_week(self):
        week = resolve_period("week", now=datetime(2024, 6, 12))
        previous = previous_window(week)
        assert previous.start == datetime(2024, 6, 3)
        assert previous.end == datetime(2024, 6, 9, 23, 59, 59)

    def test_previous_day(self):
        today = resolve_period("today", now=datetime(2024, 6, 12, 9, 0))
        previous = previous_window(today)
        assert previous.start_date == date(2024, 6, 11)
        assert previous.end_date == date(2024, 6, 11)

    def test_previous_window_ends_the_day_before(self):
        window = PeriodWindow(datetime(2024, 3, 1), datetime(2024, 3, 31, 23, 59, 59), "month")
        previous = previous_window(window)
        assert previous.end_date == date(2024, 2, 29)
        assert previous.length_days == window.length_days


class TestComparePeriods:

    def test_counts_both_windows(self, session, factory):
        district = factory.district()
        for day in (10, 11, 12):
            factory.case(district, opened_on=date(2024, 6, day))
        factory.case(district, opened_on=date(2024, 6, 4))
        factory.case(district, opened_on=date(2024, 6, 9))
        factory.case(district, opened_on=date(2024, 5, 1))

        week = resolve_period("week", now=datetime(2024, 6, 12))
        result = compare_periods(session, ALL, week)

        assert result == {
            "current_count": 3,
            "previous_count": 2,
            "growth_rate": 50.0,
            "difference": 1,
            "trend": "up",
            "previous_from": "2024-06-03",
            "previous_to": "2024-06-09",
        }

    def test_empty_scope_is_stable(self, session, factory):
        factory.district()
        week = resolve_period("week", now=datetime(2024, 6, 12))
        result = compare_periods(session, ALL, week)
        assert result["growth_rate"] == 0.0
        assert result["trend"] == "stable"
