"""Driver capability set consumed by driver sessions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from barprism.core.models.market import Field, Period

if TYPE_CHECKING:
    from barprism.core.models.bar import Bar
    from barprism.core.services.history.session import DriverSession


@dataclass(frozen=True)
class SupportedParameters:
    """What a driver can deliver."""

    periods: tuple[Period, ...]
    fields: Field

    def supports_fields(self, mask: Field) -> bool:
        wanted = mask & ~Field.TIMESTAMP
        return (self.fields & wanted) == wanted

    @property
    def finest_period(self) -> Period:
        return min(self.periods)


@runtime_checkable
class DataDriver(Protocol):
    """One backing store able to produce bars one at a time.

    ``pull`` returns the next bar, ``None`` once the source is exhausted, and
    raises on failure. ``cancel`` is a best-effort hint that the session has
    enough data.
    """

    name: str

    def describe_supported_parameters(self) -> SupportedParameters: ...

    def pull(self, session: DriverSession) -> Bar | None: ...

    def cancel(self, session: DriverSession) -> None: ...


__all__ = ["DataDriver", "SupportedParameters"]
