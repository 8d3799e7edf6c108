from __future__ import annotations

from datetime import date

import pytest

from barprism.core.config import CalendarConfig
from barprism.core.services import TradingCalendar


def test_calendar_trading_days_skip_weekend() -> None:
    calendar = TradingCalendar()

    days = calendar.trading_days(date(2024, 1, 1), date(2024, 1, 7))

    assert days == [
        date(2024, 1, 1),
        date(2024, 1, 2),
        date(2024, 1, 3),
        date(2024, 1, 4),
        date(2024, 1, 5),
    ]


def test_calendar_holiday_excluded() -> None:
    calendar = TradingCalendar.with_holidays([date(2024, 1, 1)])

    assert not calendar.is_trading_day(date(2024, 1, 1))
    assert calendar.trading_days(date(2024, 1, 1), date(2024, 1, 2)) == [date(2024, 1, 2)]


def test_calendar_last_trading_day_walks_back() -> None:
    calendar = TradingCalendar.with_holidays([date(2024, 3, 29)])

    assert calendar.last_trading_day(date(2024, 3, 1), date(2024, 3, 31)) == date(2024, 3, 28)


def test_calendar_last_trading_day_falls_back_to_end() -> None:
    calendar = TradingCalendar()

    assert calendar.last_trading_day(date(2024, 1, 6), date(2024, 1, 7)) == date(2024, 1, 7)


def test_calendar_from_config_uses_custom_weekend() -> None:
    calendar = TradingCalendar.from_config(CalendarConfig(weekend_days=[4, 5], holidays=["2024-01-02"]))

    assert calendar.trading_days(date(2024, 1, 1), date(2024, 1, 7)) == [
        date(2024, 1, 1),
        date(2024, 1, 3),
        date(2024, 1, 4),
        date(2024, 1, 7),
    ]


def test_calendar_rejects_reversed_range() -> None:
    with pytest.raises(ValueError):
        TradingCalendar().trading_days(date(2024, 1, 7), date(2024, 1, 1))
