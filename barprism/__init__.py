"""barprism - multi-source OHLCV history builder

Pulls bars from several data drivers, brings them onto one period, applies
split and value adjustments and merges them into a single columnar series.

Examples:
    >>> import barprism
    >>> history = barprism.build_history(
    ...     [
    ...         {"driver": primary, "category": "stock", "symbol": "AAPL", "period": barprism.Period.DAILY},
    ...         {"driver": backup, "category": "stock", "symbol": "AAPL", "period": barprism.Period.DAILY},
    ...     ]
    ... )
    >>> history.to_frame()
"""

from barprism.core.config import BarPrismConfig, ConfigManager
from barprism.core.data.drivers import DataDriver, MemoryDriver, SupportedParameters
from barprism.core.exceptions import (
    AllocError,
    DriverError,
    HistoryError,
    IndexRangeError,
    InternalError,
    ParamError,
    RetCode,
)
from barprism.core.models import Bar, Field, History, HistoryFlag, Period, SplitAdjust, ValueAdjust
from barprism.core.services import TradingCalendar
from barprism.core.services.history import HistoryBuilder, build_history, transform_period

__version__ = "0.1.0"

__all__ = [
    "AllocError",
    "Bar",
    "BarPrismConfig",
    "ConfigManager",
    "DataDriver",
    "DriverError",
    "Field",
    "History",
    "HistoryBuilder",
    "HistoryError",
    "HistoryFlag",
    "IndexRangeError",
    "InternalError",
    "MemoryDriver",
    "ParamError",
    "Period",
    "RetCode",
    "SplitAdjust",
    "SupportedParameters",
    "TradingCalendar",
    "ValueAdjust",
    "build_history",
    "transform_period",
    "__version__",
]
