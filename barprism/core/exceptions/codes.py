"""Flat return-code taxonomy shared by the history builder."""

from __future__ import annotations

from enum import Enum


class RetCode(str, Enum):
    """Status codes reported by sessions and builds."""

    SUCCESS = "SUCCESS"
    OUT_OF_RANGE_START_INDEX = "OUT_OF_RANGE_START_INDEX"
    OUT_OF_RANGE_END_INDEX = "OUT_OF_RANGE_END_INDEX"
    BAD_PARAM = "BAD_PARAM"
    ALLOC_ERROR = "ALLOC_ERROR"
    DRIVER_ERROR = "DRIVER_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def is_fatal(self) -> bool:
        """Fatal codes abort the whole build."""
        return self in (RetCode.ALLOC_ERROR, RetCode.INTERNAL_ERROR)


__all__ = ["RetCode"]
