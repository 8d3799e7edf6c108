"""Execution of the merge plan into final columnar arrays."""

from __future__ import annotations

import numpy as np
from loguru import logger

from barprism.core.exceptions import AllocError, InternalError
from barprism.core.models.block import TIMESTAMP_DTYPE, DataBlock
from barprism.core.models.history import History
from barprism.core.models.market import FIELD_COLUMNS, Field, Period
from barprism.core.services.history.support import BuilderSupport

_DTYPES = {
    "open": np.float64,
    "high": np.float64,
    "low": np.float64,
    "close": np.float64,
    "volume": np.int64,
    "open_interest": np.int64,
}


class HistoryAssembler:
    """Copies merge ops into a History and tears the build state down."""

    def assemble(self, support: BuilderSupport, period: Period) -> History:
        """Walk ``support.merge_ops`` once, copying each run into new arrays."""
        fields = support.common_field_provided
        names = [column for flag, column in FIELD_COLUMNS.items() if flag in fields]
        size = support.nb_price_bar
        try:
            timestamp = np.empty(size, dtype=TIMESTAMP_DTYPE)
            columns = {name: np.empty(size, dtype=_DTYPES[name]) for name in names}
        except MemoryError as e:
            raise AllocError(f"cannot allocate {size} bars", details={"nb_bars": size}) from e

        position = 0
        for op in support.merge_ops:
            source = slice(op.start_index, op.stop_index)
            target = slice(position, position + op.count)
            timestamp[target] = op.block.timestamp[source]
            for name in names:
                values = getattr(op.block, name)
                if values is None:
                    raise InternalError(f"merge op source lacks column {name}")
                columns[name][target] = values[source]
            position += op.count
        if position != size:
            raise InternalError(
                "merge plan does not cover the price bar count",
                details={"copied": position, "nb_price_bar": size},
            )
        if size > 1 and not bool(np.all(timestamp[1:] > timestamp[:-1])):
            raise InternalError("merged timestamps are not strictly increasing")

        return History(period=period, timestamp=timestamp, field_provided=fields | Field.TIMESTAMP, **columns)

    def assemble_block(self, block: DataBlock, into: History | None = None) -> History:
        """Copy a single block into a new History, or overwrite ``into`` in place."""
        timestamp = block.timestamp[: block.nb_bars].copy()
        columns = {name: values.copy() for name, values in block.columns().items()}
        if into is None:
            return History(
                period=block.period,
                timestamp=timestamp,
                field_provided=block.field_provided,
                **columns,
            )

        into.period = block.period
        into.timestamp = timestamp
        for name in FIELD_COLUMNS.values():
            setattr(into, name, columns.get(name))
        into.field_provided = block.field_provided
        return into

    def teardown(self, support: BuilderSupport) -> None:
        """Release everything the build allocated, whatever stage it reached."""
        nb_ops = len(support.merge_ops)
        support.release()
        logger.debug("build state released after {} merge ops", nb_ops)
