"""Single bar as handed over by a driver."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from barprism.core.models.market import FIELD_COLUMNS, Field, Period


def naive_utc(value: datetime) -> datetime:
    """Drop timezone information after converting to UTC."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class Bar(BaseModel):
    """One OHLCV bar stamped with its closing instant."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    period: Period
    open: float | None = None
    high: float | None = None
    low: float | None = None
    close: float | None = None
    volume: int | None = None
    open_interest: int | None = None

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime) -> datetime:
        return naive_utc(value)

    @model_validator(mode="after")
    def _check_range(self) -> "Bar":
        if self.high is not None and self.low is not None and self.high < self.low:
            raise ValueError(f"high {self.high} below low {self.low}")
        return self

    @property
    def fields(self) -> Field:
        """Bitmask of the populated columns, timestamp included."""
        mask = Field.TIMESTAMP
        for flag, column in FIELD_COLUMNS.items():
            if getattr(self, column) is not None:
                mask |= flag
        return mask
