"""N-way, timestamp ordered merge of every contributing session."""

from __future__ import annotations

import heapq
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from barprism.core.models.block import DataBlock
from barprism.core.services.history.session import DriverSession


@dataclass
class MergeOp:
    """Copy ``count`` bars of ``block`` starting at ``start_index``."""

    block: DataBlock
    start_index: int
    count: int

    @property
    def stop_index(self) -> int:
        return self.start_index + self.count


class _Cursor:
    """Position of one session inside its own block sequence."""

    __slots__ = ("order", "blocks", "block_pos", "cur_index", "cur_timestamp")

    def __init__(self, order: int, blocks: Sequence[DataBlock]) -> None:
        self.order = order
        self.blocks = [b for b in blocks if b.nb_bars]
        self.block_pos = 0
        self.cur_index = 0
        self.cur_timestamp = self._stamp()

    @property
    def exhausted(self) -> bool:
        return self.block_pos >= len(self.blocks)

    @property
    def block(self) -> DataBlock:
        return self.blocks[self.block_pos]

    def _stamp(self) -> int | None:
        if self.exhausted:
            return None
        return int(self.block.timestamp[self.cur_index].astype(np.int64))

    def advance(self) -> None:
        self.cur_index += 1
        if self.cur_index >= self.block.nb_bars:
            self.block_pos += 1
            self.cur_index = 0
        self.cur_timestamp = self._stamp()


class Merger:
    """Builds the ordered plan of copies producing the final series.

    The smallest current timestamp wins. On equal timestamps the session
    attached first supplies the bar; the others skip that instant and keep
    advancing. Consecutive picks from the same block coalesce into one op.
    """

    def merge(self, sessions: Sequence[DriverSession]) -> list[MergeOp]:
        heap: list[tuple[int, int, _Cursor]] = []
        for session in sessions:
            cursor = _Cursor(session.handle, session.blocks)
            if not cursor.exhausted:
                heap.append((cursor.cur_timestamp, cursor.order, cursor))
        heapq.heapify(heap)

        plan: list[MergeOp] = []
        last_emitted: int | None = None
        while heap:
            stamp, _, cursor = heapq.heappop(heap)
            if last_emitted is None or stamp > last_emitted:
                block, index = cursor.block, cursor.cur_index
                tail = plan[-1] if plan else None
                if tail is not None and tail.block is block and tail.stop_index == index:
                    tail.count += 1
                else:
                    plan.append(MergeOp(block, index, 1))
                last_emitted = stamp
            cursor.advance()
            if not cursor.exhausted:
                heapq.heappush(heap, (cursor.cur_timestamp, cursor.order, cursor))
        return plan
