"""Columnar chunk of bars."""

from __future__ import annotations

from datetime import datetime

import numpy as np

from barprism.core.exceptions import InternalError
from barprism.core.models.bar import Bar
from barprism.core.models.market import FIELD_COLUMNS, Field, Period

TIMESTAMP_DTYPE = "datetime64[s]"

_COLUMN_DTYPES: dict[str, type] = {
    "open": np.float64,
    "high": np.float64,
    "low": np.float64,
    "close": np.float64,
    "volume": np.int64,
    "open_interest": np.int64,
}


def to_datetime64(value: datetime) -> np.datetime64:
    return np.datetime64(value.replace(tzinfo=None), "s")


class DataBlock:
    """Parallel numpy columns for a run of bars sharing one period and field set.

    Columns whose field is not provided are ``None``. While a block is being
    filled its arrays may hold spare capacity past ``nb_bars``; ``trim()``
    cuts them to size.
    """

    __slots__ = ("period", "field_provided", "nb_bars", "timestamp", *_COLUMN_DTYPES)

    def __init__(self, period: Period, field_provided: Field, capacity: int = 16) -> None:
        self.period = period
        self.field_provided = field_provided | Field.TIMESTAMP
        self.nb_bars = 0
        self.timestamp = np.empty(capacity, dtype=TIMESTAMP_DTYPE)
        for flag, column in FIELD_COLUMNS.items():
            array = np.empty(capacity, dtype=_COLUMN_DTYPES[column]) if flag in self.field_provided else None
            setattr(self, column, array)

    @classmethod
    def from_arrays(
        cls,
        period: Period,
        timestamp: np.ndarray,
        **columns: np.ndarray | None,
    ) -> DataBlock:
        """Wrap already built arrays; the field set follows the non-None columns."""
        unknown = set(columns) - set(_COLUMN_DTYPES)
        if unknown:
            raise ValueError(f"unknown columns: {sorted(unknown)}")
        fields = Field.TIMESTAMP
        for flag, column in FIELD_COLUMNS.items():
            if columns.get(column) is not None:
                fields |= flag
        block = cls(period, fields, capacity=0)
        block.timestamp = np.asarray(timestamp, dtype=TIMESTAMP_DTYPE)
        block.nb_bars = len(block.timestamp)
        for column, dtype in _COLUMN_DTYPES.items():
            values = columns.get(column)
            setattr(block, column, None if values is None else np.asarray(values, dtype=dtype))
        block.validate()
        return block

    @property
    def capacity(self) -> int:
        return len(self.timestamp)

    def __len__(self) -> int:
        return self.nb_bars

    def columns(self) -> dict[str, np.ndarray]:
        """Provided columns, cut to ``nb_bars``."""
        out: dict[str, np.ndarray] = {}
        for column in _COLUMN_DTYPES:
            array = getattr(self, column)
            if array is not None:
                out[column] = array[: self.nb_bars]
        return out

    @property
    def first_timestamp(self) -> np.datetime64 | None:
        return self.timestamp[0] if self.nb_bars else None

    @property
    def last_timestamp(self) -> np.datetime64 | None:
        return self.timestamp[self.nb_bars - 1] if self.nb_bars else None

    def append(self, bar: Bar) -> None:
        """Append one bar, doubling the capacity when full."""
        if self.nb_bars == self.capacity:
            self._grow(max(16, self.capacity * 2))
        index = self.nb_bars
        self.timestamp[index] = to_datetime64(bar.timestamp)
        for column in _COLUMN_DTYPES:
            array = getattr(self, column)
            if array is not None:
                array[index] = getattr(bar, column)
        self.nb_bars += 1

    def _grow(self, capacity: int) -> None:
        self.timestamp = _resized(self.timestamp, self.nb_bars, capacity)
        for column in _COLUMN_DTYPES:
            array = getattr(self, column)
            if array is not None:
                setattr(self, column, _resized(array, self.nb_bars, capacity))

    def trim(self) -> None:
        if self.capacity != self.nb_bars:
            self._grow(self.nb_bars)

    def validate(self) -> None:
        """Check the column lengths and timestamp ordering."""
        for column in ("timestamp", *_COLUMN_DTYPES):
            array = getattr(self, column)
            if array is not None and len(array) < self.nb_bars:
                raise InternalError(
                    f"column {column} holds {len(array)} values for {self.nb_bars} bars",
                    details={"column": column},
                )
        stamps = self.timestamp[: self.nb_bars]
        if self.nb_bars > 1 and not bool(np.all(stamps[1:] > stamps[:-1])):
            raise InternalError("block timestamps are not strictly increasing")

    def release(self) -> None:
        self.nb_bars = 0
        self.timestamp = np.empty(0, dtype=TIMESTAMP_DTYPE)
        for column in _COLUMN_DTYPES:
            setattr(self, column, None)

    def __repr__(self) -> str:
        return f"DataBlock(period={self.period.name}, nb_bars={self.nb_bars}, fields={self.field_provided!r})"


def _resized(array: np.ndarray, used: int, capacity: int) -> np.ndarray:
    out = np.empty(capacity, dtype=array.dtype)
    out[:used] = array[:used]
    return out
