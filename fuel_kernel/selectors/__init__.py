"""Read-only selectors returning DTOs."""

from fuel_kernel.selectors.balance_verifier import BalanceVerifier
from fuel_kernel.selectors.dispense_selector import DispenseSelector
from fuel_kernel.selectors.journey_selector import JourneySelector

__all__ = ["BalanceVerifier", "DispenseSelector", "JourneySelector"]
