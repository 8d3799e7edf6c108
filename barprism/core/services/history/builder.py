"""Public entry point assembling a history out of attached drivers."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from loguru import logger
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from barprism.core.config.settings import BarPrismConfig
from barprism.core.data.drivers.base import DataDriver
from barprism.core.exceptions import HistoryError, ParamError, RetCode
from barprism.core.logging import build_context
from barprism.core.models.adjustments import SplitAdjust, ValueAdjust
from barprism.core.models.bar import naive_utc
from barprism.core.models.history import History
from barprism.core.models.market import Field, HistoryFlag, Period
from barprism.core.services.calendars import TradingCalendar
from barprism.core.services.history.adjuster import Adjuster
from barprism.core.services.history.assembler import HistoryAssembler
from barprism.core.services.history.merger import Merger
from barprism.core.services.history.period import PeriodNormalizer
from barprism.core.services.history.session import DriverSession
from barprism.core.services.history.support import BuilderSupport


class AttachParams(BaseModel):
    """Validated arguments of ``HistoryBuilder.attach_source``."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    driver: Any
    category: str
    symbol: str
    period: Period
    start: datetime | None = None
    end: datetime | None = None
    field_mask: Any = Field.ALL
    required: bool = False
    splits: tuple[SplitAdjust, ...] = ()
    values: tuple[ValueAdjust, ...] = ()

    @field_validator("start", "end", mode="before")
    @classmethod
    def _dates_to_datetimes(cls, value: Any) -> Any:
        if isinstance(value, date) and not isinstance(value, datetime):
            return datetime(value.year, value.month, value.day)
        return value

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime | None) -> datetime | None:
        return None if value is None else naive_utc(value)

    @field_validator("field_mask")
    @classmethod
    def _as_field(cls, value: Any) -> Field:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("field_mask must be a Field combination")
        if value & ~int(Field.ALL):
            raise ValueError(f"unknown field bits in {value:#x}")
        return Field(value)

    @field_validator("symbol")
    @classmethod
    def _symbol_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("symbol must not be blank")
        return value

    @model_validator(mode="after")
    def _check_driver(self) -> "AttachParams":
        if not isinstance(self.driver, DataDriver):
            raise ValueError(f"{type(self.driver).__name__} does not implement the driver protocol")
        if not self.field_mask & ~Field.TIMESTAMP:
            raise ValueError("field_mask selects no price or volume column")
        return self


class HistoryBuilder:
    """Assemble one OHLCV history out of one or more drivers.

    Examples:
        >>> builder = HistoryBuilder()
        >>> builder.attach_source(primary, "stock", "AAPL", Period.DAILY, start, end)
        >>> builder.attach_source(backup, "stock", "AAPL", Period.DAILY, start, end)
        >>> history = builder.build()

    A builder is single use: ``build()`` consumes every attached session.
    """

    def __init__(
        self,
        config: BarPrismConfig | None = None,
        calendar: TradingCalendar | None = None,
    ) -> None:
        self.config = config or BarPrismConfig()
        self.calendar = calendar or TradingCalendar.from_config(self.config.calendar)
        self._support = BuilderSupport(self.config.builder)
        self._assembler = HistoryAssembler()
        self._built = False

    @property
    def sessions(self) -> Sequence[DriverSession]:
        return tuple(self._support.sessions)

    def attach_source(
        self,
        driver: DataDriver,
        category: str,
        symbol: str,
        period: Period,
        start: datetime | date | None = None,
        end: datetime | date | None = None,
        field_mask: Field = Field.ALL,
        *,
        required: bool = False,
        splits: Sequence[SplitAdjust] = (),
        values: Sequence[ValueAdjust] = (),
    ) -> RetCode:
        """Register a data source. Malformed arguments raise ``ParamError``."""
        if self._built:
            raise ParamError("sources cannot be attached after build()")
        try:
            params = AttachParams(
                driver=driver,
                category=category,
                symbol=symbol,
                period=period,
                start=start,
                end=end,
                field_mask=field_mask,
                required=required,
                splits=tuple(splits),
                values=tuple(values),
            )
        except ValidationError as e:
            raise ParamError(
                f"invalid data source parameters: {e.error_count()} error(s)",
                details={"errors": e.errors(include_url=False, include_input=False)},
            ) from e

        supported = params.driver.describe_supported_parameters()
        if params.field_mask != Field.ALL and not supported.supports_fields(params.field_mask):
            raise ParamError(
                f"driver {getattr(driver, 'name', driver)!r} cannot provide the requested fields",
                details={"requested": int(params.field_mask), "supported": int(supported.fields)},
            )

        session = self._support.attach_source(
            params.driver,
            params.category,
            params.symbol,
            params.period,
            params.start,
            params.end,
            params.field_mask,
            required=params.required,
            splits=params.splits,
            values=params.values,
            supported_parameters=supported,
        )
        logger.bind(driver=session.driver_name).debug(
            "attached source {} for {} at {}", session.handle, params.symbol, params.period.name
        )
        return RetCode.SUCCESS

    def cancel(self) -> None:
        """Ask every session to stop pulling; bars already collected are kept."""
        self._support.cancel_all()

    def build(self, flags: HistoryFlag = HistoryFlag.NONE) -> History:
        """Pull, normalize, adjust, merge and assemble.

        Returns a complete History or raises; never a partial result. A
        non-fatal source failure is reported through ``History.ret_code`` and
        ``History.errors`` while the other sources still merge.
        """
        if self._built:
            raise ParamError("build() already called on this builder")
        if not self._support.sessions:
            raise ParamError("no data source attached")
        self._built = True
        flags = HistoryFlag(flags)
        support = self._support
        symbols = ",".join(sorted({s.symbol for s in support.sessions}))

        with build_context(symbols):
            try:
                support.collect()
                support.raise_on_failure()
                support.mark_contributors()

                period = PeriodNormalizer(self.calendar, flags).normalize(support)
                Adjuster(flags).adjust(support)
                plan = Merger().merge(support.contributors)
                support.finalize(plan)

                history = self._assembler.assemble(support, period)
                history.ret_code = support.ret_code
                history.errors = support.error_summaries()
                logger.info(
                    "built {} bars of {} from {} source(s)",
                    history.nb_bars,
                    period.name,
                    len(support.contributors),
                )
                return history
            except HistoryError as e:
                logger.bind(error_code=e.error_code).error("history build failed: {}", e.message)
                raise
            finally:
                self._assembler.teardown(support)


def build_history(
    sources: Sequence[dict[str, Any]],
    flags: HistoryFlag = HistoryFlag.NONE,
    config: BarPrismConfig | None = None,
    calendar: TradingCalendar | None = None,
) -> History:
    """Attach every mapping in ``sources`` (``attach_source`` keyword arguments) and build."""
    builder = HistoryBuilder(config, calendar)
    for source in sources:
        builder.attach_source(**source)
    return builder.build(flags)
