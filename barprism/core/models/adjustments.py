"""Retroactive split and value adjustment records."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from barprism.core.models.bar import naive_utc


class SplitAdjust(BaseModel):
    """Multiplicative correction applied to prices and volume of every earlier bar."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    factor: float = Field(gt=0)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return naive_utc(value)


class ValueAdjust(BaseModel):
    """Additive correction (dividend, disbursement) subtracted from earlier prices."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    amount: float

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return naive_utc(value)


def merge_same_instant_splits(splits: Iterable[SplitAdjust]) -> tuple[SplitAdjust, ...]:
    """Combine splits sharing a timestamp into one factor, sorted by time."""

    grouped: dict[datetime, float] = {}
    for split in splits:
        grouped[split.timestamp] = grouped.get(split.timestamp, 1.0) * split.factor
    return tuple(SplitAdjust(timestamp=ts, factor=factor) for ts, factor in sorted(grouped.items()))


def merge_same_instant_values(values: Iterable[ValueAdjust]) -> tuple[ValueAdjust, ...]:
    """Combine value adjustments sharing a timestamp into one amount, sorted by time."""

    grouped: dict[datetime, float] = {}
    for value in values:
        grouped[value.timestamp] = grouped.get(value.timestamp, 0.0) + value.amount
    return tuple(ValueAdjust(timestamp=ts, amount=amount) for ts, amount in sorted(grouped.items()))
