"""Exception handling module."""

from barprism.core.exceptions.base import (
    AllocError,
    DriverError,
    HistoryError,
    IndexRangeError,
    InternalError,
    ParamError,
    error_from_code,
)
from barprism.core.exceptions.codes import RetCode

__all__ = [
    "HistoryError",
    "ParamError",
    "AllocError",
    "InternalError",
    "DriverError",
    "IndexRangeError",
    "RetCode",
    "error_from_code",
]
