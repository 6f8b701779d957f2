"""ORM models for journey records and dispense events."""

from fuel_kernel.models.dispense import DispenseEvent, DispenseHistoryEntry
from fuel_kernel.models.journey import JourneyRecord

__all__ = [
    "JourneyRecord",
    "DispenseEvent",
    "DispenseHistoryEntry",
]
