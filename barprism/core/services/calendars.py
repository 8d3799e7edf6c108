"""Trading calendars used to label calendar period windows."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from barprism.core.config.settings import CalendarConfig

default_weekend = frozenset({5, 6})


@dataclass(frozen=True)
class TradingCalendar:
    """Weekend days plus explicit holidays."""

    weekend_days: frozenset[int] = default_weekend
    holidays: frozenset[date] = frozenset()

    @classmethod
    def from_config(cls, config: CalendarConfig) -> TradingCalendar:
        return cls(weekend_days=frozenset(config.weekend_days), holidays=frozenset(config.holidays))

    @classmethod
    def with_holidays(cls, holidays: Iterable[date]) -> TradingCalendar:
        return cls(holidays=frozenset(holidays))

    def is_trading_day(self, day: date) -> bool:
        return day.weekday() not in self.weekend_days and day not in self.holidays

    def trading_days(self, start: date, end: date) -> list[date]:
        """Return trading days between the provided bounds inclusive."""

        if end < start:
            raise ValueError("end must be on or after start")

        current = start
        days: list[date] = []
        while current <= end:
            if self.is_trading_day(current):
                days.append(current)
            current += timedelta(days=1)
        return days

    def last_trading_day(self, start: date, end: date) -> date:
        """Latest trading day in ``[start, end]``, or ``end`` when the range has none."""

        current = end
        while current >= start:
            if self.is_trading_day(current):
                return current
            current -= timedelta(days=1)
        return end


__all__ = ["TradingCalendar", "default_weekend"]
