"""Period, field and flag enums."""

from enum import IntEnum, IntFlag


class Period(IntEnum):
    """Sampling period of a bar sequence, valued in seconds.

    Ordering follows coarseness, so ``max()`` over periods yields the coarsest.
    """

    MIN_1 = 60
    MIN_5 = 300
    MIN_10 = 600
    MIN_15 = 900
    MIN_30 = 1800
    HOURLY = 3600
    DAILY = 86400
    WEEKLY = 604800
    MONTHLY = 2678400
    QUARTERLY = 8035200
    YEARLY = 32140800

    @property
    def is_intraday(self) -> bool:
        return self < Period.DAILY


class Field(IntFlag):
    """Columns a bar sequence can carry."""

    OPEN = 1
    HIGH = 2
    LOW = 4
    CLOSE = 8
    VOLUME = 16
    OPEN_INTEREST = 32
    TIMESTAMP = 64
    ALL = OPEN | HIGH | LOW | CLOSE | VOLUME | OPEN_INTEREST | TIMESTAMP


PRICE_FIELDS = Field.OPEN | Field.HIGH | Field.LOW | Field.CLOSE

# column name per field, in output order
FIELD_COLUMNS: dict[Field, str] = {
    Field.OPEN: "open",
    Field.HIGH: "high",
    Field.LOW: "low",
    Field.CLOSE: "close",
    Field.VOLUME: "volume",
    Field.OPEN_INTEREST: "open_interest",
}


class HistoryFlag(IntFlag):
    """Options altering how a history is assembled."""

    NONE = 0
    ALLOW_INCOMPLETE_PRICE_BARS = 1
    DISABLE_SPLIT_ADJUST = 2
    DISABLE_VALUE_ADJUST = 4
    REPLACE_ZERO_PRICE_BAR = 8
