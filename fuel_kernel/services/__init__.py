"""Write-side services and the FuelAllocationEngine facade."""

from fuel_kernel.services.dispense_lifecycle import DispenseLifecycleService
from fuel_kernel.services.fuel_engine import FuelAllocationEngine
from fuel_kernel.services.journey_matcher import JourneyMatcher, MatchResult
from fuel_kernel.services.journey_service import JourneyService
from fuel_kernel.services.ledger_service import LedgerService, LedgerUpdate

__all__ = [
    "FuelAllocationEngine",
    "DispenseLifecycleService",
    "JourneyMatcher",
    "MatchResult",
    "JourneyService",
    "LedgerService",
    "LedgerUpdate",
]
