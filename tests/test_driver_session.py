"""Tests for the per-source pull loop."""

from __future__ import annotations

from datetime import datetime

import pytest

from barprism.core.data.drivers import MemoryDriver
from barprism.core.exceptions import DriverError, InternalError, RetCode
from barprism.core.models import Bar, Field, Period, SplitAdjust
from barprism.core.services.history import DriverSession, SessionState


class CancellingDriver(MemoryDriver):
    """Signals that enough data arrived after ``stop_after`` bars."""

    def __init__(self, bars, stop_after: int, **kwargs):
        super().__init__(bars, **kwargs)
        self.stop_after = stop_after

    def pull(self, session):
        bar = super().pull(session)
        if self.pull_count >= self.stop_after:
            session.cancel()
        return bar


def _session(driver, **kwargs) -> DriverSession:
    return DriverSession(0, driver, "stock", "AAPL", Period.DAILY, **kwargs)


def test_pull_all_fills_blocks_of_block_size(daily_bars) -> None:
    driver = MemoryDriver(daily_bars([1, 2, 3, 4, 5], [1.0, 2.0, 3.0, 4.0, 5.0]))
    session = _session(driver, block_size=2)

    assert session.pull_all() is RetCode.SUCCESS
    assert session.state is SessionState.FINISHED
    assert session.finish_indication
    assert [block.nb_bars for block in session.blocks] == [2, 2, 1]
    assert all(block.capacity == block.nb_bars for block in session.blocks)
    assert session.period_provided is Period.DAILY
    assert session.field_provided == Field.ALL & ~Field.OPEN_INTEREST
    assert session.lowest_timestamp == datetime(2024, 1, 1)
    assert session.highest_timestamp == datetime(2024, 1, 5)


def test_start_after_end_finishes_without_calling_driver(daily_bars) -> None:
    driver = MemoryDriver(daily_bars([1, 2], [1.0, 2.0]))
    session = _session(driver, start=datetime(2024, 1, 5), end=datetime(2024, 1, 1))

    assert session.pull_all() is RetCode.SUCCESS
    assert session.nb_bars == 0
    assert driver.pull_count == 0
    assert session.state is SessionState.FINISHED


def test_bars_outside_range_are_skipped(daily_bars) -> None:
    driver = MemoryDriver(daily_bars([1, 2, 3, 4, 5], [1.0, 2.0, 3.0, 4.0, 5.0]))
    session = _session(driver, start=datetime(2024, 1, 2), end=datetime(2024, 1, 4))
    session.pull_all()

    assert session.nb_bars == 3
    assert session.lowest_timestamp == datetime(2024, 1, 2)
    assert session.highest_timestamp == datetime(2024, 1, 4)


def test_info_since_last_call_resets(daily_bars) -> None:
    session = _session(MemoryDriver(daily_bars([1, 2, 3], [1.0, 2.0, 3.0])))
    session.pull_all()

    info = session.info_since_last_call()
    assert info.bar_added
    assert info.lowest_timestamp == datetime(2024, 1, 1)
    assert info.highest_timestamp == datetime(2024, 1, 3)

    again = session.info_since_last_call()
    assert not again.bar_added
    assert again.lowest_timestamp is None


def test_driver_registers_adjustments_on_first_pull(daily_bars) -> None:
    split = SplitAdjust(timestamp=datetime(2024, 1, 2), factor=2.0)
    session = _session(MemoryDriver(daily_bars([1, 2, 3], [1.0, 2.0, 3.0]), splits=[split]))
    session.pull_all()

    assert session.split_adjusts == [split]
    assert session.value_adjusts == []


def test_driver_failure_keeps_collected_bars(daily_bars) -> None:
    driver = MemoryDriver(daily_bars([1, 2, 3], [1.0, 2.0, 3.0]), name="flaky", fail_after=2)
    session = _session(driver)

    assert session.pull_all() is RetCode.DRIVER_ERROR
    assert session.state is SessionState.ERRORED
    assert isinstance(session.error, DriverError)
    assert session.error.driver_name == "flaky"
    assert session.error.details["exception"] == "MemoryDriverFailure"
    assert session.nb_bars == 2
    assert session.finish_indication


def test_period_change_mid_stream_is_internal_error() -> None:
    bars = [
        Bar(timestamp=datetime(2024, 1, 1), period=Period.DAILY, close=1.0),
        Bar(timestamp=datetime(2024, 1, 2), period=Period.HOURLY, close=2.0),
    ]
    session = _session(MemoryDriver(bars))

    assert session.pull_all() is RetCode.INTERNAL_ERROR
    assert isinstance(session.error, InternalError)


def test_field_change_mid_stream_is_internal_error() -> None:
    bars = [
        Bar(timestamp=datetime(2024, 1, 1), period=Period.DAILY, close=1.0),
        Bar(timestamp=datetime(2024, 1, 2), period=Period.DAILY, close=2.0, volume=3),
    ]
    session = _session(MemoryDriver(bars))

    assert session.pull_all() is RetCode.INTERNAL_ERROR


def test_non_increasing_timestamps_are_internal_error() -> None:
    bars = [
        Bar(timestamp=datetime(2024, 1, 2), period=Period.DAILY, close=1.0),
        Bar(timestamp=datetime(2024, 1, 2), period=Period.DAILY, close=2.0),
    ]
    session = _session(MemoryDriver(bars))

    assert session.pull_all() is RetCode.INTERNAL_ERROR


def test_bar_limit_is_alloc_error(daily_bars) -> None:
    session = _session(MemoryDriver(daily_bars([1, 2, 3], [1.0, 2.0, 3.0])), max_bars=2)

    assert session.pull_all() is RetCode.ALLOC_ERROR
    assert session.ret_code.is_fatal


def test_cancel_before_pull_stops_driver(daily_bars) -> None:
    driver = MemoryDriver(daily_bars([1, 2, 3], [1.0, 2.0, 3.0]))
    session = _session(driver)
    session.cancel()

    assert session.pull_all() is RetCode.SUCCESS
    assert session.enough_valid_data_provided
    assert session.nb_bars == 0
    assert driver.cancelled == ["AAPL"]
    assert driver.pull_count == 0


def test_cancel_mid_pull_keeps_collected_bars(daily_bars) -> None:
    driver = CancellingDriver(daily_bars([1, 2, 3, 4, 5], [1.0, 2.0, 3.0, 4.0, 5.0]), stop_after=3)
    session = _session(driver)

    assert session.pull_all() is RetCode.SUCCESS
    assert session.state is SessionState.FINISHED
    assert session.nb_bars == 3
    assert session.highest_timestamp == datetime(2024, 1, 3)
    assert driver.cancelled == ["AAPL"]


def test_session_cannot_be_pulled_twice(daily_bars) -> None:
    session = _session(MemoryDriver(daily_bars([1], [1.0])))
    session.pull_all()

    with pytest.raises(InternalError):
        session.pull_all()


def test_release_is_single_shot(daily_bars) -> None:
    session = _session(MemoryDriver(daily_bars([1, 2], [1.0, 2.0])))
    session.pull_all()
    session.release()

    assert session.blocks == []
    with pytest.raises(InternalError):
        session.release()
