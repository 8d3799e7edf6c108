"""History building pipeline: sessions, normalization, adjustment, merge, assembly."""

from barprism.core.services.history.adjuster import (
    Adjuster,
    apply_split_adjust,
    apply_value_adjust,
    replace_zero_price_bars,
)
from barprism.core.services.history.assembler import HistoryAssembler
from barprism.core.services.history.builder import AttachParams, HistoryBuilder, build_history
from barprism.core.services.history.merger import MergeOp, Merger
from barprism.core.services.history.period import PeriodNormalizer, resample, transform_period, window_labels
from barprism.core.services.history.session import AddedDataInfo, DriverSession, SessionState
from barprism.core.services.history.support import BuilderSupport

__all__ = [
    "AddedDataInfo",
    "Adjuster",
    "AttachParams",
    "BuilderSupport",
    "DriverSession",
    "HistoryAssembler",
    "HistoryBuilder",
    "MergeOp",
    "Merger",
    "PeriodNormalizer",
    "SessionState",
    "apply_split_adjust",
    "apply_value_adjust",
    "build_history",
    "replace_zero_price_bars",
    "resample",
    "transform_period",
    "window_labels",
]
