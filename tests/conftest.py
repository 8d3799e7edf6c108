"""Pytest configuration for the barprism test suite."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime, timedelta

import pytest

from barprism.core.data.drivers import MemoryDriver
from barprism.core.logging import configure_logging
from barprism.core.models import Bar, Period


def pytest_addoption(parser: pytest.Parser) -> None:
    """Register the option that enables the long-running build tests."""

    parser.addoption(
        "--barprism-run-integration",
        action="store_true",
        default=False,
        help="Run barprism integration tests that build large multi-source histories.",
    )


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "integration: marks barprism tests building large multi-source histories",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip integration tests unless explicitly requested."""

    if config.getoption("--barprism-run-integration"):
        return

    skip_integration = pytest.mark.skip(reason="integration tests require --barprism-run-integration")
    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_integration)


def _daily(day: int, close: float, volume: int = 100, month: int = 1) -> Bar:
    return Bar(
        timestamp=datetime(2024, month, day),
        period=Period.DAILY,
        open=close,
        high=close + 1,
        low=close - 1,
        close=close,
        volume=volume,
    )


@pytest.fixture
def daily_bars() -> Callable[..., list[Bar]]:
    """Factory: ``daily_bars([1, 2, 3], [10.0, 11.0, 12.0])`` builds January 2024 bars."""

    def build(days: Sequence[int], closes: Sequence[float], volume: int = 100) -> list[Bar]:
        return [_daily(day, close, volume) for day, close in zip(days, closes, strict=True)]

    return build


@pytest.fixture
def hourly_bars() -> Callable[..., list[Bar]]:
    """Factory for hourly bars stamped at their closing hour, starting one hour after ``day``."""

    def build(day: datetime, hours: int) -> list[Bar]:
        return [
            Bar(
                timestamp=day + timedelta(hours=i),
                period=Period.HOURLY,
                open=float(i),
                high=float(i + 2),
                low=float(i - 1),
                close=float(i + 1),
                volume=i * 10,
            )
            for i in range(1, hours + 1)
        ]

    return build


@pytest.fixture
def memory_driver() -> Callable[..., MemoryDriver]:
    def build(bars: Sequence[Bar], name: str = "memory", **kwargs) -> MemoryDriver:
        return MemoryDriver(bars, name=name, **kwargs)

    return build


@pytest.fixture(autouse=True)
def _quiet_logging():
    """Keep every test on the default stderr sink at WARNING."""

    yield
    configure_logging(level="WARNING")
