"""Tests for session ownership, field aggregation and the error policy."""

from __future__ import annotations

from datetime import datetime

import pytest

from barprism.core.config import BuilderConfig
from barprism.core.data.drivers import MemoryDriver
from barprism.core.exceptions import AllocError, DriverError, InternalError, RetCode
from barprism.core.models import Bar, Field, Period
from barprism.core.services.history import BuilderSupport, Merger, SessionState


def _attach(support: BuilderSupport, driver, field_mask: Field = Field.ALL, **kwargs):
    return support.attach_source(driver, "stock", "AAPL", Period.DAILY, None, None, field_mask, **kwargs)


def _close_only(days: list[int]) -> list[Bar]:
    return [Bar(timestamp=datetime(2024, 1, d), period=Period.DAILY, close=float(d)) for d in days]


class TestAttach:
    def test_handles_follow_attach_order(self, daily_bars):
        support = BuilderSupport()
        first = _attach(support, MemoryDriver(daily_bars([1], [1.0])))
        second = _attach(support, MemoryDriver(daily_bars([2], [2.0])))

        assert (first.handle, second.handle) == (0, 1)
        assert first.field_mask == Field.ALL

    def test_session_settings_come_from_config(self, daily_bars):
        support = BuilderSupport(BuilderConfig(block_size=2, max_bars_per_session=3))
        session = _attach(support, MemoryDriver(daily_bars([1, 2, 3, 4], [1.0, 2.0, 3.0, 4.0])))
        support.collect()

        assert session.ret_code is RetCode.ALLOC_ERROR

    def test_requested_fields_union(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1], [1.0])), Field.CLOSE)
        _attach(support, MemoryDriver(daily_bars([1], [1.0])), Field.VOLUME)

        assert support.requested_fields == Field.CLOSE | Field.VOLUME | Field.TIMESTAMP

    def test_attach_after_release_fails(self, daily_bars):
        support = BuilderSupport()
        support.release()

        with pytest.raises(InternalError):
            _attach(support, MemoryDriver(daily_bars([1], [1.0])))


class TestErrorPolicy:
    def test_non_fatal_failure_is_recorded(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0]), name="primary"))
        _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0]), name="backup", fail_after=0))
        support.collect()
        support.raise_on_failure()

        assert support.ret_code is RetCode.DRIVER_ERROR
        assert isinstance(support.first_error, DriverError)
        assert [s.handle for s in support.mark_contributors()] == [0]
        summaries = support.error_summaries()
        assert summaries[0]["driver"] == "backup"
        assert summaries[0]["code"] == "DRIVER_ERROR"

    def test_first_error_is_sticky(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1], [1.0])))
        _attach(support, MemoryDriver(daily_bars([1], [1.0]), name="a", fail_after=0))
        _attach(support, MemoryDriver(daily_bars([1], [1.0]), name="b", fail_after=0))
        support.collect()

        assert support.first_error.driver_name == "a"

    def test_required_failure_raises(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1], [1.0])))
        _attach(support, MemoryDriver(daily_bars([1], [1.0]), name="must", fail_after=0), required=True)
        support.collect()

        with pytest.raises(DriverError) as exc_info:
            support.raise_on_failure()
        assert exc_info.value.driver_name == "must"

    def test_all_sessions_failing_raises(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1], [1.0]), fail_after=0))
        support.collect()

        with pytest.raises(DriverError):
            support.raise_on_failure()

    def test_failure_raises_when_no_other_source_has_bars(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver([]))
        _attach(support, MemoryDriver(daily_bars([1], [1.0]), name="broken", fail_after=0))
        support.collect()

        with pytest.raises(DriverError):
            support.raise_on_failure()

    def test_fatal_failure_raises_even_with_good_sources(self, daily_bars):
        support = BuilderSupport(BuilderConfig(max_bars_per_session=1))
        _attach(support, MemoryDriver(daily_bars([1], [1.0])))
        _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0])))
        support.collect()

        with pytest.raises(AllocError):
            support.raise_on_failure()


class TestFields:
    def test_session_missing_requested_field_is_excluded(self):
        support = BuilderSupport()
        _attach(support, MemoryDriver(_close_only([1, 2])), Field.CLOSE | Field.VOLUME)
        support.collect()

        assert support.mark_contributors() == []

    def test_common_fields_are_intersected(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0])))
        _attach(support, MemoryDriver(_close_only([3, 4])))
        support.collect()
        support.mark_contributors()
        support.finalize(Merger().merge(support.contributors))

        assert support.common_field_provided == Field.CLOSE | Field.TIMESTAMP
        assert support.nb_price_bar == 4

    def test_common_fields_are_limited_to_requested(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0])), Field.CLOSE)
        support.collect()
        support.mark_contributors()
        support.finalize(Merger().merge(support.contributors))

        assert support.common_field_provided == Field.CLOSE | Field.TIMESTAMP

    def test_no_contributor_keeps_requested_fields(self):
        support = BuilderSupport()
        _attach(support, MemoryDriver([]), Field.CLOSE)
        support.collect()
        support.mark_contributors()
        support.finalize([])

        assert support.common_field_provided == Field.CLOSE | Field.TIMESTAMP
        assert support.nb_price_bar == 0


class TestLifecycle:
    def test_finalize_requires_terminal_sessions(self, daily_bars):
        support = BuilderSupport()
        _attach(support, MemoryDriver(daily_bars([1], [1.0])))

        with pytest.raises(InternalError):
            support.finalize([])

    def test_threaded_collect(self, daily_bars):
        support = BuilderSupport(BuilderConfig(max_workers=4))
        sessions = [
            _attach(support, MemoryDriver(daily_bars([1, 2, 3], [1.0, 2.0, 3.0]), name=f"d{i}"))
            for i in range(3)
        ]
        support.collect()

        assert support.wait_all(timeout=1.0)
        assert all(s.state is SessionState.FINISHED for s in sessions)
        assert all(s.nb_bars == 3 for s in sessions)

    def test_cancel_all(self, daily_bars):
        support = BuilderSupport()
        session = _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0])))
        support.cancel_all()
        support.collect()

        assert session.nb_bars == 0
        assert support.ret_code is RetCode.SUCCESS

    def test_context_manager_releases_everything(self, daily_bars):
        with BuilderSupport() as support:
            session = _attach(support, MemoryDriver(daily_bars([1, 2], [1.0, 2.0])))
            support.collect()
            blocks = list(session.blocks)

        assert support.released
        assert support.sessions == []
        assert all(block.nb_bars == 0 for block in blocks)
        support.release()
