"""Assembled columnar history handed to indicator code."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import numpy as np
import pandas as pd

from barprism.core.exceptions import IndexRangeError, RetCode
from barprism.core.models.block import TIMESTAMP_DTYPE
from barprism.core.models.market import FIELD_COLUMNS, Field, Period


@dataclass
class History:
    """Final OHLCV series.

    Columns for fields outside ``field_provided`` are ``None``. ``ret_code``
    keeps the first non-fatal session error of the build, ``errors`` lists
    every session failure that did not prevent the build.
    """

    period: Period
    timestamp: np.ndarray
    open: np.ndarray | None = None
    high: np.ndarray | None = None
    low: np.ndarray | None = None
    close: np.ndarray | None = None
    volume: np.ndarray | None = None
    open_interest: np.ndarray | None = None
    field_provided: Field = Field.TIMESTAMP
    ret_code: RetCode = RetCode.SUCCESS
    errors: list[dict[str, Any]] = field(default_factory=list)

    @property
    def nb_bars(self) -> int:
        return len(self.timestamp)

    def __len__(self) -> int:
        return self.nb_bars

    @classmethod
    def empty(cls, period: Period, field_provided: Field = Field.TIMESTAMP) -> History:
        columns = {
            column: np.empty(0, dtype=np.int64 if flag & (Field.VOLUME | Field.OPEN_INTEREST) else np.float64)
            for flag, column in FIELD_COLUMNS.items()
            if flag in field_provided
        }
        return cls(
            period=period,
            timestamp=np.empty(0, dtype=TIMESTAMP_DTYPE),
            field_provided=field_provided | Field.TIMESTAMP,
            **columns,
        )

    def columns(self) -> dict[str, np.ndarray]:
        """Provided price and volume columns keyed by name."""
        return {
            column: getattr(self, column)
            for column in FIELD_COLUMNS.values()
            if getattr(self, column) is not None
        }

    def datetimes(self) -> list[datetime]:
        return self.timestamp.astype("datetime64[s]").astype(object).tolist()

    def slice(self, start_idx: int, end_idx: int) -> History:
        """Return bars ``start_idx`` through ``end_idx`` inclusive as a new History."""
        if start_idx < 0 or start_idx >= self.nb_bars:
            raise IndexRangeError(
                f"start index {start_idx} outside 0..{self.nb_bars - 1}",
                RetCode.OUT_OF_RANGE_START_INDEX,
                start_idx,
                self.nb_bars,
            )
        if end_idx < start_idx or end_idx >= self.nb_bars:
            raise IndexRangeError(
                f"end index {end_idx} outside {start_idx}..{self.nb_bars - 1}",
                RetCode.OUT_OF_RANGE_END_INDEX,
                end_idx,
                self.nb_bars,
            )
        window = slice(start_idx, end_idx + 1)
        return History(
            period=self.period,
            timestamp=self.timestamp[window].copy(),
            field_provided=self.field_provided,
            ret_code=self.ret_code,
            errors=list(self.errors),
            **{column: values[window].copy() for column, values in self.columns().items()},
        )

    def to_frame(self) -> pd.DataFrame:
        """Return the history as a DataFrame indexed by timestamp."""
        frame = pd.DataFrame(self.columns(), index=pd.DatetimeIndex(self.timestamp, name="timestamp"))
        frame.attrs["period"] = self.period.name
        return frame
