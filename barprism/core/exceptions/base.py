"""barprism exception hierarchy."""

from __future__ import annotations

from typing import Any

from barprism.core.exceptions.codes import RetCode


class HistoryError(Exception):
    """Base class for every error raised while building a history."""

    ret_code: RetCode = RetCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        ret_code: RetCode | None = None,
        details: dict[str, Any] | None = None,
    ):
        """Initialise the error.

        Args:
            message: human readable description
            ret_code: status code, defaults to the class code
            details: extra context for logging
        """
        super().__init__(message)
        self.message = message
        if ret_code is not None:
            self.ret_code = ret_code
        self.details = details or {}

    @property
    def error_code(self) -> str:
        return self.ret_code.value

    def to_payload(self) -> dict[str, Any]:
        """Return a serializable payload representing the error."""

        return {
            "code": self.ret_code.value,
            "message": self.message,
            "details": dict(self.details),
        }


class ParamError(HistoryError):
    """Malformed caller arguments, rejected before any driver is touched."""

    ret_code = RetCode.BAD_PARAM


class AllocError(HistoryError):
    """Storage for bars could not be obtained."""

    ret_code = RetCode.ALLOC_ERROR


class InternalError(HistoryError):
    """An invariant of the pipeline was violated."""

    ret_code = RetCode.INTERNAL_ERROR


class DriverError(HistoryError):
    """A data source driver failed."""

    ret_code = RetCode.DRIVER_ERROR

    def __init__(
        self,
        message: str,
        driver_name: str,
        details: dict[str, Any] | None = None,
    ):
        super_details = dict(details or {})
        super_details["driver"] = driver_name
        super().__init__(message, RetCode.DRIVER_ERROR, super_details)
        self.driver_name = driver_name


class IndexRangeError(HistoryError):
    """A start or end index falls outside an assembled history."""

    def __init__(self, message: str, ret_code: RetCode, index: int, nb_bars: int):
        if ret_code not in (RetCode.OUT_OF_RANGE_START_INDEX, RetCode.OUT_OF_RANGE_END_INDEX):
            raise ValueError(f"{ret_code} is not an index range code")
        super().__init__(message, ret_code, {"index": index, "nb_bars": nb_bars})
        self.index = index
        self.nb_bars = nb_bars


_ERRORS_BY_CODE: dict[RetCode, type[HistoryError]] = {
    RetCode.BAD_PARAM: ParamError,
    RetCode.ALLOC_ERROR: AllocError,
    RetCode.INTERNAL_ERROR: InternalError,
}


def error_from_code(ret_code: RetCode, message: str, **details: Any) -> HistoryError:
    """Build the exception matching ``ret_code``."""

    if ret_code == RetCode.DRIVER_ERROR:
        return DriverError(message, str(details.pop("driver", "unknown")), details)
    error_cls = _ERRORS_BY_CODE.get(ret_code, HistoryError)
    return error_cls(message, ret_code, details)
