"""Split and value adjustment of normalized blocks."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np
from loguru import logger

from barprism.core.models.adjustments import (
    SplitAdjust,
    ValueAdjust,
    merge_same_instant_splits,
    merge_same_instant_values,
)
from barprism.core.models.block import TIMESTAMP_DTYPE, DataBlock
from barprism.core.models.market import FIELD_COLUMNS, PRICE_FIELDS, HistoryFlag
from barprism.core.services.history.support import BuilderSupport

_PRICE_COLUMNS = tuple(column for flag, column in FIELD_COLUMNS.items() if flag in PRICE_FIELDS)


def _later_than(block: DataBlock, stamps: np.ndarray) -> np.ndarray:
    """Index of the first adjustment strictly later than each bar."""
    return np.searchsorted(stamps, block.timestamp[: block.nb_bars], side="right")


def apply_split_adjust(block: DataBlock, splits: Sequence[SplitAdjust]) -> None:
    """Scale prices and volume by the product of every later split factor, in place."""
    if not splits or block.nb_bars == 0:
        return
    merged = merge_same_instant_splits(splits)
    stamps = np.array([s.timestamp for s in merged], dtype=TIMESTAMP_DTYPE)
    factors = np.array([s.factor for s in merged], dtype=np.float64)
    # suffix[i] = product of factors[i:], with 1.0 once past the last split
    suffix = np.append(np.cumprod(factors[::-1])[::-1], 1.0)
    multiplier = suffix[_later_than(block, stamps)]

    n = block.nb_bars
    for column in _PRICE_COLUMNS:
        values = getattr(block, column)
        if values is not None:
            values[:n] *= multiplier
    if block.volume is not None:
        block.volume[:n] = np.rint(block.volume[:n] * multiplier).astype(np.int64)


def apply_value_adjust(block: DataBlock, values: Sequence[ValueAdjust]) -> None:
    """Subtract the sum of every later value adjustment from prices, in place."""
    if not values or block.nb_bars == 0:
        return
    merged = merge_same_instant_values(values)
    stamps = np.array([v.timestamp for v in merged], dtype=TIMESTAMP_DTYPE)
    amounts = np.array([v.amount for v in merged], dtype=np.float64)
    suffix = np.append(np.cumsum(amounts[::-1])[::-1], 0.0)
    offset = suffix[_later_than(block, stamps)]

    n = block.nb_bars
    for column in _PRICE_COLUMNS:
        prices = getattr(block, column)
        if prices is not None:
            prices[:n] -= offset


def replace_zero_price_bars(blocks: Sequence[DataBlock]) -> int:
    """Turn bars whose prices are all zero into flat bars at the previous close.

    Blocks are walked in order so the previous close carries across block
    boundaries. A leading zero bar has no previous close and is left as is.
    Returns the number of replaced bars.
    """
    replaced = 0
    previous_close: float | None = None
    for block in blocks:
        if block.close is None:
            continue
        columns = [getattr(block, c) for c in _PRICE_COLUMNS if getattr(block, c) is not None]
        for i in range(block.nb_bars):
            if previous_close is not None and all(col[i] == 0.0 for col in columns):
                for col in columns:
                    col[i] = previous_close
                replaced += 1
            previous_close = float(block.close[i])
    return replaced


class Adjuster:
    """Applies each contributing session's adjustment timelines to its blocks."""

    def __init__(self, flags: HistoryFlag = HistoryFlag.NONE) -> None:
        self.flags = flags

    def adjust(self, support: BuilderSupport) -> None:
        do_split = HistoryFlag.DISABLE_SPLIT_ADJUST not in self.flags
        do_value = HistoryFlag.DISABLE_VALUE_ADJUST not in self.flags
        for session in support.contributors:
            if HistoryFlag.REPLACE_ZERO_PRICE_BAR in self.flags:
                replaced = replace_zero_price_bars(session.blocks)
                if replaced:
                    logger.bind(driver=session.driver_name).debug("replaced {} zero price bars", replaced)
            for block in session.blocks:
                if do_split:
                    apply_split_adjust(block, session.split_adjusts)
                if do_value:
                    apply_value_adjust(block, session.value_adjusts)
