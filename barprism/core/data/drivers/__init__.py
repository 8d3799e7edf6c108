"""Data source drivers."""

from barprism.core.data.drivers.base import DataDriver, SupportedParameters
from barprism.core.data.drivers.memory import MemoryDriver, MemoryDriverFailure

__all__ = ["DataDriver", "SupportedParameters", "MemoryDriver", "MemoryDriverFailure"]
