"""Resampling of blocks onto a common, coarser period.

Window rule:

* intraday targets use epoch aligned windows; bars are stamped with their
  closing instant, so a bar at ``t`` belongs to the window closing at
  ``ceil(t / P) * P`` and the window carries that instant;
* ``DAILY`` windows are calendar days; an intraday bar stamped exactly at
  midnight closes the previous day; the window carries the day at 00:00;
* ``WEEKLY`` (Monday to Sunday), ``MONTHLY``, ``QUARTERLY`` and ``YEARLY``
  windows are calendar ranges carrying their last trading day according to
  the ``TradingCalendar``.

A trailing window is complete once the data, or the session's requested
end, reaches the window's closing bound. Incomplete trailing windows are
dropped unless ``HistoryFlag.ALLOW_INCOMPLETE_PRICE_BARS`` is set.
"""

from __future__ import annotations

from datetime import datetime

import numpy as np
from loguru import logger

from barprism.core.exceptions import ParamError
from barprism.core.models.block import TIMESTAMP_DTYPE, DataBlock, to_datetime64
from barprism.core.models.history import History
from barprism.core.models.market import HistoryFlag, Period
from barprism.core.services.calendars import TradingCalendar
from barprism.core.services.history.assembler import HistoryAssembler
from barprism.core.services.history.session import DriverSession
from barprism.core.services.history.support import BuilderSupport

_ONE_SECOND = np.timedelta64(1, "s")
_ONE_DAY = np.timedelta64(1, "D")


def _trading_days(timestamp: np.ndarray, source: Period) -> np.ndarray:
    if source.is_intraday:
        return (timestamp - _ONE_SECOND).astype("datetime64[D]")
    return timestamp.astype("datetime64[D]")


def _calendar_windows(days: np.ndarray, target: Period) -> tuple[np.ndarray, np.ndarray]:
    """First and last calendar day of the window holding each day."""
    if target == Period.DAILY:
        return days, days
    if target == Period.WEEKLY:
        # 1970-01-01 was a Thursday
        weekday = (days.astype(np.int64) + 3) % 7
        first = days - weekday.astype("timedelta64[D]")
        return first, first + np.timedelta64(6, "D")
    if target == Period.MONTHLY:
        months = days.astype("datetime64[M]")
        return months.astype("datetime64[D]"), (months + 1).astype("datetime64[D]") - _ONE_DAY
    if target == Period.QUARTERLY:
        months = days.astype("datetime64[M]").astype(np.int64)
        first_month = (months - months % 3).astype("datetime64[M]")
        return first_month.astype("datetime64[D]"), (first_month + 3).astype("datetime64[D]") - _ONE_DAY
    if target == Period.YEARLY:
        years = days.astype("datetime64[Y]")
        return years.astype("datetime64[D]"), (years + 1).astype("datetime64[D]") - _ONE_DAY
    raise ParamError(f"{target.name} is not a calendar period")


def window_labels(
    timestamp: np.ndarray,
    source: Period,
    target: Period,
    calendar: TradingCalendar,
) -> tuple[np.ndarray, np.ndarray]:
    """Return ``(labels, bounds)`` per bar.

    ``labels`` is the timestamp of the window holding each bar, ``bounds``
    the instant data must reach for that window to count as complete.
    """
    timestamp = np.asarray(timestamp, dtype=TIMESTAMP_DTYPE)
    if target.is_intraday:
        seconds = timestamp.astype(np.int64)
        labels = (-(-seconds // int(target)) * int(target)).astype(TIMESTAMP_DTYPE)
        return labels, labels

    days = _trading_days(timestamp, source)
    first, last = _calendar_windows(days, target)
    if target == Period.DAILY:
        labels = days.astype(TIMESTAMP_DTYPE)
    else:
        keys, inverse = np.unique(first, return_inverse=True)
        ends = last[np.searchsorted(first, keys)]
        resolved = [
            calendar.last_trading_day(start, end)
            for start, end in zip(keys.astype(object), ends.astype(object))
        ]
        labels = np.array(resolved, dtype="datetime64[D]")[inverse].astype(TIMESTAMP_DTYPE)

    bounds = labels + _ONE_DAY if source.is_intraday else labels
    return labels, bounds.astype(TIMESTAMP_DTYPE)


def resample(
    blocks: list[DataBlock],
    target: Period,
    calendar: TradingCalendar,
    *,
    covered_until: datetime | None = None,
    allow_incomplete: bool = False,
) -> DataBlock:
    """Aggregate ``blocks`` (one source, one period) into a single ``target`` block.

    open is the first open, high the max, low the min, close the last close,
    volume the sum and open interest the last value of each window.
    """
    if not blocks:
        raise ParamError("nothing to resample")
    source = blocks[0].period
    if target < source:
        raise ParamError(f"cannot resample {source.name} into finer {target.name}")

    timestamp = np.concatenate([b.timestamp[: b.nb_bars] for b in blocks])
    columns = {
        name: np.concatenate([b.columns()[name] for b in blocks]) for name in blocks[0].columns()
    }
    if len(timestamp) == 0:
        return DataBlock.from_arrays(target, timestamp, **columns)

    labels, bounds = window_labels(timestamp, source, target, calendar)
    starts = np.flatnonzero(np.r_[True, labels[1:] != labels[:-1]])
    ends = np.r_[starts[1:], len(labels)]

    out: dict[str, np.ndarray] = {}
    for name, values in columns.items():
        if name == "open":
            out[name] = values[starts]
        elif name == "high":
            out[name] = np.maximum.reduceat(values, starts)
        elif name == "low":
            out[name] = np.minimum.reduceat(values, starts)
        elif name == "volume":
            out[name] = np.add.reduceat(values, starts)
        else:
            out[name] = values[ends - 1]
    window_ts = labels[starts]

    if not allow_incomplete:
        reach = timestamp[-1]
        if covered_until is not None:
            reach = max(reach, to_datetime64(covered_until))
        if reach < bounds[-1]:
            logger.debug("dropping incomplete trailing window {}", window_ts[-1])
            window_ts = window_ts[:-1]
            out = {name: values[:-1] for name, values in out.items()}

    return DataBlock.from_arrays(target, window_ts, **out)


class PeriodNormalizer:
    """Brings every contributing session onto the coarsest period."""

    def __init__(self, calendar: TradingCalendar | None = None, flags: HistoryFlag = HistoryFlag.NONE) -> None:
        self.calendar = calendar or TradingCalendar()
        self.flags = flags

    @staticmethod
    def resolve_target(support: BuilderSupport) -> Period:
        """Coarsest of the requested periods and the contributors' native periods."""
        periods = [s.period for s in support.sessions]
        periods += [s.period_provided for s in support.contributors if s.period_provided is not None]
        if not periods:
            raise ParamError("no session to resolve a period from")
        return max(periods)

    def _on_window_labels(self, session: DriverSession, target: Period) -> bool:
        for block in session.blocks:
            timestamp = block.timestamp[: block.nb_bars]
            labels, _ = window_labels(timestamp, block.period, target, self.calendar)
            if not np.array_equal(labels, timestamp):
                return False
        return True

    def normalize(self, support: BuilderSupport) -> Period:
        """Resample every contributor onto the target period's window labels.

        Sessions already at the target period are relabelled too when their
        timestamps are not the window labels (a daily bar stamped at the
        close instead of 00:00), so one window never yields two instants.
        """
        target = self.resolve_target(support)
        allow_incomplete = HistoryFlag.ALLOW_INCOMPLETE_PRICE_BARS in self.flags
        for session in support.contributors:
            if session.period_provided == target and self._on_window_labels(session, target):
                continue
            block = resample(
                session.blocks,
                target,
                self.calendar,
                covered_until=session.end,
                allow_incomplete=allow_incomplete or session.period_provided == target,
            )
            logger.bind(driver=session.driver_name).debug(
                "resampled {} bars of {} into {} bars of {}",
                session.nb_bars,
                session.period_provided.name,
                block.nb_bars,
                target.name,
            )
            for old in session.blocks:
                old.release()
            session.blocks[:] = [block] if block.nb_bars else []
            session.period_provided = target
            session.contributing = block.nb_bars > 0
        return target


def transform_period(
    history: History,
    new_period: Period,
    flags: HistoryFlag = HistoryFlag.NONE,
    allocate_new: bool = True,
    *,
    end: datetime | None = None,
    calendar: TradingCalendar | None = None,
) -> History:
    """Resample an assembled history into ``new_period``.

    With ``allocate_new`` the original history is left untouched and a new
    one is returned; otherwise ``history`` itself is rewritten and returned.
    """
    if not isinstance(new_period, Period):
        raise ParamError(f"unknown period {new_period!r}")
    if new_period < history.period:
        raise ParamError(
            f"cannot transform {history.period.name} into finer {new_period.name}",
            details={"period": history.period.name, "new_period": new_period.name},
        )

    source = DataBlock.from_arrays(history.period, history.timestamp, **history.columns())
    if new_period == history.period:
        block = source
    else:
        block = resample(
            [source],
            new_period,
            calendar or TradingCalendar(),
            covered_until=end,
            allow_incomplete=HistoryFlag.ALLOW_INCOMPLETE_PRICE_BARS in flags,
        )
    return HistoryAssembler().assemble_block(block, None if allocate_new else history)
