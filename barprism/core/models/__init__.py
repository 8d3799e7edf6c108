"""Data models module."""

from barprism.core.models.adjustments import SplitAdjust, ValueAdjust
from barprism.core.models.bar import Bar
from barprism.core.models.block import DataBlock
from barprism.core.models.history import History
from barprism.core.models.market import FIELD_COLUMNS, PRICE_FIELDS, Field, HistoryFlag, Period

__all__ = [
    "Bar",
    "DataBlock",
    "History",
    "SplitAdjust",
    "ValueAdjust",
    "Field",
    "HistoryFlag",
    "Period",
    "FIELD_COLUMNS",
    "PRICE_FIELDS",
]
