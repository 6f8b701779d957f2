"""
FuelConfigurationSet schema.

The human-authored, reviewable source artifact for fleet fuel
configuration.  YAML is parsed into these types by the loader, checked by
the validator and turned into a kernel ConfigurationLookup by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class TruckBatch:
    """Extra fuel granted to every truck whose plate ends in one of suffixes."""

    extra_liters: Decimal
    suffixes: tuple[str, ...]


@dataclass(frozen=True)
class DestinationOverride:
    """Extra fuel for one truck suffix on one destination."""

    truck_suffix: str
    destination: str
    extra_liters: Decimal


@dataclass(frozen=True)
class RouteBudget:
    destination: str
    total_liters: Decimal


@dataclass(frozen=True)
class StandardAllocations:
    tanga_yard_to_dar: Decimal
    dar_yard_standard: Decimal
    dar_yard_kisarawe: Decimal
    mbeya_going: Decimal
    tunduma_return: Decimal
    mbeya_return: Decimal
    moro_return_to_mombasa: Decimal
    tanga_return_to_mombasa: Decimal


@dataclass(frozen=True)
class SpecialDestination:
    name: str
    zambia_going_liters: Decimal


@dataclass(frozen=True)
class ReturnStation:
    name: str
    liters: Decimal


@dataclass(frozen=True)
class FuelConfigurationSet:
    """Root configuration artifact, one per YAML file."""

    config_id: str
    version: int
    truck_batches: tuple[TruckBatch, ...]
    route_totals: tuple[RouteBudget, ...]
    standard_allocations: StandardAllocations
    zambia_return_total: Decimal
    zambia_going_reserve: Decimal
    destination_overrides: tuple[DestinationOverride, ...] = ()
    special_destinations: tuple[SpecialDestination, ...] = ()
    zambia_return_stations: tuple[ReturnStation, ...] = ()
    mombasa_markers: tuple[str, ...] = ("MOMBASA", "MSA")
    checksum: str = field(default="", compare=False)
