"""In-memory driver serving a fixed list of bars."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from threading import Lock
from typing import TYPE_CHECKING
from weakref import WeakKeyDictionary

import pandas as pd

from barprism.core.data.drivers.base import SupportedParameters
from barprism.core.models.adjustments import SplitAdjust, ValueAdjust
from barprism.core.models.bar import Bar
from barprism.core.models.market import FIELD_COLUMNS, Field, Period

if TYPE_CHECKING:
    from barprism.core.services.history.session import DriverSession


class MemoryDriverFailure(RuntimeError):
    """Raised by a ``MemoryDriver`` configured to fail."""


class MemoryDriver:
    """Serve preloaded bars, one per ``pull``.

    Adjustments given at construction are registered on the session at the
    first pull, the way a quote feed reports corporate actions alongside
    prices. Read positions live as long as their session does.
    ``fail_after`` makes the driver raise once that many bars were
    served, for exercising error paths.
    """

    def __init__(
        self,
        bars: Iterable[Bar],
        *,
        name: str = "memory",
        splits: Sequence[SplitAdjust] = (),
        values: Sequence[ValueAdjust] = (),
        fail_after: int | None = None,
    ) -> None:
        self.name = name
        self._bars = list(bars)
        self._splits = tuple(splits)
        self._values = tuple(values)
        self._fail_after = fail_after
        self._cursors: WeakKeyDictionary[DriverSession, int] = WeakKeyDictionary()
        self._lock = Lock()
        self.cancelled: list[str] = []
        self.pull_count = 0

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, period: Period, **kwargs) -> MemoryDriver:
        """Build a driver from a DataFrame indexed (or keyed) by timestamp."""
        if "timestamp" in frame.columns:
            frame = frame.set_index("timestamp")
        present = [column for column in FIELD_COLUMNS.values() if column in frame.columns]
        bars = []
        for ts, row in frame[present].iterrows():
            values = {column: row[column] for column in present if not pd.isna(row[column])}
            for column in ("volume", "open_interest"):
                if column in values:
                    values[column] = int(values[column])
            bars.append(Bar(timestamp=pd.Timestamp(ts).to_pydatetime(), period=period, **values))
        return cls(bars, **kwargs)

    def describe_supported_parameters(self) -> SupportedParameters:
        periods = tuple(sorted({bar.period for bar in self._bars})) or (Period.DAILY,)
        fields = Field.TIMESTAMP
        for bar in self._bars:
            fields |= bar.fields
        return SupportedParameters(periods=periods, fields=fields)

    def pull(self, session: DriverSession) -> Bar | None:
        with self._lock:
            first_call = session not in self._cursors
            index = self._cursors.get(session, 0)
            self.pull_count += 1
        if first_call:
            for split in self._splits:
                session.add_split_adjust(split.timestamp, split.factor)
            for value in self._values:
                session.add_value_adjust(value.timestamp, value.amount)

        while index < len(self._bars):
            if self._fail_after is not None and index >= self._fail_after:
                raise MemoryDriverFailure(f"{self.name} failed after {self._fail_after} bars")
            bar = self._bars[index]
            index += 1
            if session.start is not None and bar.timestamp < session.start:
                continue
            if session.end is not None and bar.timestamp > session.end:
                continue
            with self._lock:
                self._cursors[session] = index
            return bar

        with self._lock:
            self._cursors[session] = index
        return None

    def cancel(self, session: DriverSession) -> None:
        self.cancelled.append(session.symbol)


__all__ = ["MemoryDriver", "MemoryDriverFailure"]
