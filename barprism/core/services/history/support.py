"""Owner of every session, block and merge op of one build request."""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from contextvars import copy_context
from datetime import datetime
from functools import reduce
from operator import and_, or_
from typing import TYPE_CHECKING, Any

from loguru import logger

from barprism.core.config.settings import BuilderConfig
from barprism.core.exceptions import HistoryError, InternalError, RetCode
from barprism.core.models.adjustments import SplitAdjust, ValueAdjust
from barprism.core.models.market import Field, Period
from barprism.core.services.history.session import DriverSession, SessionState

if TYPE_CHECKING:
    from barprism.core.data.drivers.base import DataDriver, SupportedParameters
    from barprism.core.services.history.merger import MergeOp


class BuilderSupport:
    """Collects sessions, aggregates their fields and keeps the sticky error.

    Everything allocated during a build hangs off ``sessions`` and
    ``merge_ops`` so ``release()`` can drop it in one traversal, whichever
    stage failed.
    """

    def __init__(self, config: BuilderConfig | None = None) -> None:
        self.config = config or BuilderConfig()
        self.sessions: list[DriverSession] = []
        self.merge_ops: list[MergeOp] = []
        self.nb_price_bar = 0
        self.common_field_provided: Field = Field.TIMESTAMP
        self.ret_code = RetCode.SUCCESS
        self.first_error: HistoryError | None = None
        self._released = False

    def __enter__(self) -> BuilderSupport:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.release()

    def attach_source(
        self,
        driver: DataDriver,
        category: str,
        symbol: str,
        period: Period,
        start: datetime | None,
        end: datetime | None,
        field_mask: Field = Field.ALL,
        *,
        required: bool = False,
        splits: Iterable[SplitAdjust] = (),
        values: Iterable[ValueAdjust] = (),
        supported_parameters: SupportedParameters | None = None,
    ) -> DriverSession:
        if self._released:
            raise InternalError("cannot attach to a released builder")
        session = DriverSession(
            len(self.sessions),
            driver,
            category,
            symbol,
            period,
            start,
            end,
            field_mask,
            required=required,
            block_size=self.config.block_size,
            max_bars=self.config.max_bars_per_session,
            splits=splits,
            values=values,
            supported_parameters=supported_parameters,
        )
        self.sessions.append(session)
        return session

    @property
    def contributors(self) -> list[DriverSession]:
        return [session for session in self.sessions if session.contributing]

    @property
    def requested_fields(self) -> Field:
        """Union of the field masks requested across sessions."""
        return reduce(or_, (session.field_mask for session in self.sessions), Field.TIMESTAMP)

    def collect(self) -> None:
        """Run every pending pull loop, then wait until all sessions are terminal."""
        pending = [session for session in self.sessions if session.state is SessionState.CREATED]
        if self.config.max_workers > 1 and len(pending) > 1:
            with ThreadPoolExecutor(
                max_workers=min(self.config.max_workers, len(pending)),
                thread_name_prefix="barprism-pull",
            ) as pool:
                # each thread runs in its own copy of the caller's log context
                futures = [pool.submit(copy_context().run, session.pull_all) for session in pending]
            for future in futures:
                future.result()
        else:
            for session in pending:
                session.pull_all()

        self.wait_all()
        for session in self.sessions:
            self._record(session)

    def wait_all(self, timeout: float | None = None) -> bool:
        """Barrier on every session's completion signal."""
        return all(session.wait(timeout) for session in self.sessions)

    def cancel_all(self) -> None:
        for session in self.sessions:
            session.cancel()

    def _record(self, session: DriverSession) -> None:
        if session.ret_code is RetCode.SUCCESS:
            return
        if self.ret_code is RetCode.SUCCESS:
            self.ret_code = session.ret_code
            self.first_error = session.error

    def raise_on_failure(self) -> None:
        """Raise when the collected errors make the build unusable.

        Fatal codes always abort. A driver error aborts when the session was
        attached as required or when no other session collected any bar.
        """
        failed = [s for s in self.sessions if s.state is SessionState.ERRORED]
        if not failed:
            return
        for session in failed:
            if session.ret_code.is_fatal:
                raise session.error
        for session in failed:
            if session.required:
                raise session.error
        if not any(s.state is SessionState.FINISHED and s.nb_bars for s in self.sessions):
            raise self.first_error

        for session in failed:
            logger.bind(driver=session.driver_name, error_code=session.ret_code.value).warning(
                "ignoring failed source {}, other sources continue", session.symbol
            )

    def mark_contributors(self) -> list[DriverSession]:
        """Flag sessions eligible for the merge."""
        for session in self.sessions:
            session.contributing = False
            if session.state is not SessionState.FINISHED or session.nb_bars == 0:
                continue
            missing = Field(0) if session.wants_all_fields else session.field_mask & ~session.field_provided
            if missing:
                logger.bind(driver=session.driver_name).warning(
                    "source {} lacks requested fields {}, excluded", session.symbol, missing
                )
                continue
            session.contributing = True
        return self.contributors

    def error_summaries(self) -> list[dict[str, Any]]:
        return [
            {"handle": s.handle, "driver": s.driver_name, "symbol": s.symbol, **s.error.to_payload()}
            for s in self.sessions
            if s.error is not None
        ]

    def finalize(self, plan: list[MergeOp]) -> None:
        """Record the merge plan and the final field set.

        Only valid once every session reached a terminal state.
        """
        not_done = [s.handle for s in self.sessions if not s.state.is_terminal]
        if not_done:
            raise InternalError("finalize called before every session finished", details={"sessions": not_done})

        requested = self.requested_fields
        contributors = self.contributors
        if contributors:
            common = reduce(and_, (s.field_provided for s in contributors), Field.ALL)
            self.common_field_provided = (common & requested) | Field.TIMESTAMP
        else:
            self.common_field_provided = requested
        self.merge_ops = plan
        self.nb_price_bar = sum(op.count for op in plan)

    def release(self) -> None:
        """Drop every session, block and merge op exactly once."""
        if self._released:
            return
        released_blocks = 0
        for session in self.sessions:
            released_blocks += len(session.blocks)
            session.release()
        logger.debug("released {} sessions and {} blocks", len(self.sessions), released_blocks)
        self.sessions.clear()
        self.merge_ops.clear()
        self._released = True

    @property
    def released(self) -> bool:
        return self._released
