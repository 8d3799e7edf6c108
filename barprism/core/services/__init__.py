"""Domain services."""

from barprism.core.services.calendars import TradingCalendar

__all__ = ["TradingCalendar"]
