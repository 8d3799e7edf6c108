"""Per-source pull state and accumulated blocks."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from loguru import logger

from barprism.core.exceptions import AllocError, DriverError, HistoryError, InternalError, RetCode
from barprism.core.models.adjustments import SplitAdjust, ValueAdjust
from barprism.core.models.block import DataBlock
from barprism.core.models.market import Field, Period

if TYPE_CHECKING:
    from barprism.core.data.drivers.base import DataDriver, SupportedParameters
    from barprism.core.models.bar import Bar


class SessionState(str, Enum):
    CREATED = "created"
    PULLING = "pulling"
    CANCELLING = "cancelling"
    FINISHED = "finished"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.FINISHED, SessionState.ERRORED)


@dataclass(frozen=True)
class AddedDataInfo:
    """Bars appended since the previous ``info_since_last_call``."""

    bar_added: bool
    lowest_timestamp: datetime | None
    highest_timestamp: datetime | None


class DriverSession:
    """Pull loop and raw blocks for one attached data source.

    ``handle`` is the attach order inside the owning builder. The session
    never holds a reference to its owner; the owner reads ``ret_code`` and
    ``error`` once the completion signal is set.

    Only the pull loop mutates blocks and extremes. Other threads may call
    ``cancel()`` and ``wait()``; everything else must wait for ``finished``.
    """

    def __init__(
        self,
        handle: int,
        driver: DataDriver,
        category: str,
        symbol: str,
        period: Period,
        start: datetime | None = None,
        end: datetime | None = None,
        field_mask: Field = Field.ALL,
        *,
        required: bool = False,
        block_size: int = 1024,
        max_bars: int = 10_000_000,
        splits: Iterable[SplitAdjust] = (),
        values: Iterable[ValueAdjust] = (),
        supported_parameters: SupportedParameters | None = None,
    ) -> None:
        self.handle = handle
        self.driver = driver
        self.category = category
        self.symbol = symbol
        self.period = period
        self.start = start
        self.end = end
        self.field_mask = field_mask | Field.TIMESTAMP
        self.required = required
        self.supported_parameters = supported_parameters
        self._block_size = block_size
        self._max_bars = max_bars

        self.period_provided: Period | None = None
        self.field_provided: Field | None = None
        self.blocks: list[DataBlock] = []
        self.lowest_timestamp: datetime | None = None
        self.highest_timestamp: datetime | None = None

        self.state = SessionState.CREATED
        self.ret_code = RetCode.SUCCESS
        self.error: HistoryError | None = None
        self.contributing = False

        self.split_adjusts: list[SplitAdjust] = list(splits)
        self.value_adjusts: list[ValueAdjust] = list(values)

        self._cancel_requested = threading.Event()
        self._finished = threading.Event()
        self._lock = threading.Lock()
        self._added: AddedDataInfo = AddedDataInfo(False, None, None)
        self._accepted = 0
        self._released = False
        self._log = logger.bind(driver=getattr(driver, "name", type(driver).__name__), symbol=symbol)

    @property
    def driver_name(self) -> str:
        return getattr(self.driver, "name", type(self.driver).__name__)

    @property
    def enough_valid_data_provided(self) -> bool:
        return self._cancel_requested.is_set()

    @property
    def finish_indication(self) -> bool:
        return self._finished.is_set()

    @property
    def wants_all_fields(self) -> bool:
        return self.field_mask == Field.ALL

    @property
    def nb_bars(self) -> int:
        return sum(block.nb_bars for block in self.blocks)

    def cancel(self) -> None:
        """Ask the pull loop to stop before its next pull."""
        self._cancel_requested.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._finished.wait(timeout)

    def add_split_adjust(self, timestamp: datetime, factor: float) -> None:
        with self._lock:
            self.split_adjusts.append(SplitAdjust(timestamp=timestamp, factor=factor))

    def add_value_adjust(self, timestamp: datetime, amount: float) -> None:
        with self._lock:
            self.value_adjusts.append(ValueAdjust(timestamp=timestamp, amount=amount))

    def info_since_last_call(self) -> AddedDataInfo:
        """Return what was appended since the previous call and reset the counters."""
        with self._lock:
            info = self._added
            self._added = AddedDataInfo(False, None, None)
        return info

    def pull_all(self) -> RetCode:
        """Run the pull loop to a terminal state and return the session status."""
        if self.state is not SessionState.CREATED:
            raise InternalError(
                f"session {self.handle} already pulled", details={"state": self.state.value}
            )
        try:
            if self.start is not None and self.end is not None and self.start > self.end:
                self._log.debug("empty range requested, driver not called")
                self.state = SessionState.FINISHED
                return self.ret_code

            self.state = SessionState.PULLING
            while True:
                if self._cancel_requested.is_set():
                    self._stop_driver()
                    break
                try:
                    bar = self.driver.pull(self)
                except HistoryError as e:
                    self._fail(e)
                    return self.ret_code
                except Exception as e:
                    self._fail(
                        DriverError(
                            f"driver {self.driver_name} failed: {e}",
                            self.driver_name,
                            {"symbol": self.symbol, "exception": type(e).__name__},
                        )
                    )
                    return self.ret_code
                if bar is None:
                    break
                self._accept(bar)

            for block in self.blocks:
                block.trim()
            self.state = SessionState.FINISHED
            self._log.debug(
                "session finished",
                bars=self.nb_bars,
                blocks=len(self.blocks),
                cancelled=self._cancel_requested.is_set(),
            )
        except HistoryError as e:
            self._fail(e)
        finally:
            self._finished.set()
        return self.ret_code

    def _stop_driver(self) -> None:
        self.state = SessionState.CANCELLING
        try:
            self.driver.cancel(self)
        except Exception as e:
            # bars already collected stay valid
            self._log.warning("driver cancel failed: {}", e)

    def _accept(self, bar: Bar) -> None:
        if self.start is not None and bar.timestamp < self.start:
            return
        if self.end is not None and bar.timestamp > self.end:
            return

        fields = bar.fields
        if self.period_provided is None:
            self.period_provided = bar.period
            self.field_provided = fields
        elif bar.period != self.period_provided:
            raise InternalError(
                "driver changed period mid-stream",
                details={"expected": self.period_provided.name, "got": bar.period.name},
            )
        elif fields != self.field_provided:
            raise InternalError(
                "driver changed field set mid-stream",
                details={"expected": int(self.field_provided), "got": int(fields)},
            )
        if self.highest_timestamp is not None and bar.timestamp <= self.highest_timestamp:
            raise InternalError(
                "driver timestamps are not strictly increasing",
                details={"previous": self.highest_timestamp, "got": bar.timestamp},
            )
        if self._accepted >= self._max_bars:
            raise AllocError(
                f"session exceeded {self._max_bars} bars", details={"symbol": self.symbol}
            )

        if not self.blocks or self.blocks[-1].nb_bars >= self._block_size:
            self.blocks.append(DataBlock(bar.period, fields, capacity=min(16, self._block_size)))
        try:
            self.blocks[-1].append(bar)
        except MemoryError as e:
            raise AllocError("cannot grow data block", details={"symbol": self.symbol}) from e
        self._accepted += 1

        if self.lowest_timestamp is None:
            self.lowest_timestamp = bar.timestamp
        self.highest_timestamp = bar.timestamp
        with self._lock:
            previous = self._added
            self._added = AddedDataInfo(
                True,
                previous.lowest_timestamp or bar.timestamp,
                bar.timestamp,
            )

    def _fail(self, error: HistoryError) -> None:
        self.state = SessionState.ERRORED
        self.ret_code = error.ret_code
        self.error = error
        self._log.bind(error_code=error.error_code).warning("session failed: {}", error.message)

    def release(self) -> None:
        """Drop every block and adjustment. Safe to call once per session."""
        if self._released:
            raise InternalError(f"session {self.handle} released twice")
        for block in self.blocks:
            block.release()
        self.blocks.clear()
        self.split_adjusts.clear()
        self.value_adjusts.clear()
        self._released = True

    def __repr__(self) -> str:
        return (
            f"DriverSession(handle={self.handle}, driver={self.driver_name!r}, "
            f"symbol={self.symbol!r}, state={self.state.value}, bars={self.nb_bars})"
        )
