"""
ConfigurationLookup -- read-only fuel configuration tables.

Responsibility:
    Answers the two configuration questions a journey needs before its
    balance can be trusted: how many liters the route is budgeted (total
    liters) and how much extra fuel the truck's batch is granted.  Also
    serves the standard checkpoint quantities used by the allocator.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Instances are built
    from a validated configuration set by ``fuel_config.bridges``; the
    kernel never reads configuration files itself.

Invariants enforced:
    - Extra fuel is a two-level lookup: a destination override for the
      truck suffix wins, otherwise the suffix's batch default, otherwise
      missing.  Missing is a value, never an exception.
    - Destinations are compared in canonical form (uppercase, single
      spaces).

Failure modes:
    - InvalidTruckNumberError when the truck number cannot be normalized.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from types import MappingProxyType

from fuel_kernel.domain.truck_number import truck_suffix


def normalize_destination(destination: str | None) -> str:
    """Canonical destination label ("  kolwezi " -> "KOLWEZI")."""
    if not destination:
        return ""
    return " ".join(destination.upper().split())


@dataclass(frozen=True)
class FuelStandards:
    """Standard checkpoint quantities in liters."""

    tanga_yard_to_dar: Decimal
    dar_yard_standard: Decimal
    dar_yard_kisarawe: Decimal
    mbeya_going: Decimal
    tunduma_return: Decimal
    mbeya_return: Decimal
    moro_return_to_mombasa: Decimal
    tanga_return_to_mombasa: Decimal
    zambia_return_total: Decimal
    zambia_going_reserve: Decimal


class ExtraFuelSource(str, Enum):
    """Where an extra-fuel figure came from."""

    DESTINATION_OVERRIDE = "destination_override"
    BATCH_DEFAULT = "batch_default"
    MISSING = "missing"


@dataclass(frozen=True)
class ExtraFuelResolution:
    truck_suffix: str
    extra_liters: Decimal | None
    source: ExtraFuelSource
    destination: str | None = None

    @property
    def is_missing(self) -> bool:
        return self.extra_liters is None


class ConfigurationLookup:
    """
    In-memory lookup over truck batches, route budgets and standards.

    Contract:
        All methods are pure and fail fast; nothing here touches the
        database or the filesystem.
    """

    def __init__(
        self,
        batch_extras: Mapping[str, Decimal],
        route_totals: Mapping[str, Decimal],
        standards: FuelStandards,
        destination_overrides: Mapping[tuple[str, str], Decimal] | None = None,
        special_destinations: Mapping[str, Decimal] | None = None,
        mombasa_markers: tuple[str, ...] = ("MOMBASA", "MSA"),
        config_id: str = "inline",
        config_version: int = 0,
    ):
        self._batch_extras = MappingProxyType(
            {suffix.strip().lower(): liters for suffix, liters in batch_extras.items()}
        )
        self._route_totals = MappingProxyType(
            {normalize_destination(dest): liters for dest, liters in route_totals.items()}
        )
        self._overrides = MappingProxyType(
            {
                (suffix.strip().lower(), normalize_destination(dest)): liters
                for (suffix, dest), liters in (destination_overrides or {}).items()
            }
        )
        self._special_destinations = MappingProxyType(
            {
                normalize_destination(dest): liters
                for dest, liters in (special_destinations or {}).items()
            }
        )
        self._mombasa_markers = tuple(m.upper() for m in mombasa_markers)
        self._standards = standards
        self.config_id = config_id
        self.config_version = config_version

    @property
    def standards(self) -> FuelStandards:
        return self._standards

    def resolve_extra_fuel(
        self,
        truck_no: str,
        destination: str | None = None,
    ) -> ExtraFuelResolution:
        """Extra liters for a truck, optionally specialised by destination."""
        suffix = truck_suffix(truck_no)
        dest = normalize_destination(destination)

        if dest:
            override = self._overrides.get((suffix, dest))
            if override is not None:
                return ExtraFuelResolution(
                    truck_suffix=suffix,
                    extra_liters=override,
                    source=ExtraFuelSource.DESTINATION_OVERRIDE,
                    destination=dest,
                )

        default = self._batch_extras.get(suffix)
        if default is not None:
            return ExtraFuelResolution(
                truck_suffix=suffix,
                extra_liters=default,
                source=ExtraFuelSource.BATCH_DEFAULT,
                destination=dest or None,
            )

        return ExtraFuelResolution(
            truck_suffix=suffix,
            extra_liters=None,
            source=ExtraFuelSource.MISSING,
            destination=dest or None,
        )

    def resolve_total_liters(self, destination: str | None) -> Decimal | None:
        """Route budget for a destination, or None when the route is unknown."""
        return self._route_totals.get(normalize_destination(destination))

    def special_zambia_going(self, destination: str | None) -> Decimal | None:
        """Fixed Zambia-going allowance for special destinations (Lusaka...)."""
        dest = normalize_destination(destination)
        if not dest:
            return None
        for name, liters in self._special_destinations.items():
            if name in dest:
                return liters
        return None

    def is_mombasa_destination(self, destination: str | None) -> bool:
        words = normalize_destination(destination).split(" ")
        dest = " ".join(words)
        return any(
            marker in words if len(marker) <= 3 else marker in dest
            for marker in self._mombasa_markers
        )

    def known_suffixes(self) -> frozenset[str]:
        return frozenset(self._batch_extras)
