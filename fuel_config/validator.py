"""
Configuration Validator (``fuel_config.validator``).

Validates a ``FuelConfigurationSet`` before it is turned into a lookup.

Invariants enforced
-------------------
* A truck suffix belongs to at most one batch.
* Every quantity is non-negative; batch and route quantities are positive.
* Route destinations are unique.
* Zambia return stations add up to the Zambia return total.

Failure modes
-------------
* Errors  -> configuration MUST NOT be used.
* Warnings  -> usable, but should be reviewed (e.g. an override for a
  suffix that is in no batch).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from fuel_config.schema import FuelConfigurationSet


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: FuelConfigurationSet) -> ConfigValidationResult:
    """Validate a configuration set."""
    result = ConfigValidationResult()

    _validate_batches(config, result)
    _validate_overrides(config, result)
    _validate_routes(config, result)
    _validate_standards(config, result)
    _validate_zambia_return(config, result)

    return result


def _validate_batches(config: FuelConfigurationSet, result: ConfigValidationResult) -> None:
    """Check that each suffix is in exactly one batch."""
    seen: dict[str, Decimal] = {}
    for batch in config.truck_batches:
        if batch.extra_liters <= 0:
            result.add_error(f"Truck batch extra_liters must be positive: {batch.extra_liters}")
        for suffix in batch.suffixes:
            if not suffix:
                result.add_error("Truck batch contains an empty suffix")
            elif suffix in seen:
                result.add_error(
                    f"Truck suffix '{suffix}' is in batch {seen[suffix]} "
                    f"and batch {batch.extra_liters}"
                )
            else:
                seen[suffix] = batch.extra_liters


def _validate_overrides(config: FuelConfigurationSet, result: ConfigValidationResult) -> None:
    batch_suffixes = {s for b in config.truck_batches for s in b.suffixes}
    seen: set[tuple[str, str]] = set()
    for override in config.destination_overrides:
        key = (override.truck_suffix, override.destination)
        if key in seen:
            result.add_error(
                f"Duplicate destination override for '{override.truck_suffix}' "
                f"to {override.destination}"
            )
        seen.add(key)
        if override.extra_liters < 0:
            result.add_error(
                f"Destination override for '{override.truck_suffix}' has negative liters"
            )
        if override.truck_suffix not in batch_suffixes:
            result.add_warning(
                f"Destination override for '{override.truck_suffix}' "
                "references a suffix in no truck batch"
            )


def _validate_routes(config: FuelConfigurationSet, result: ConfigValidationResult) -> None:
    seen: set[str] = set()
    for route in config.route_totals:
        if route.destination in seen:
            result.add_error(f"Duplicate route destination: {route.destination}")
        seen.add(route.destination)
        if route.total_liters <= 0:
            result.add_error(
                f"Route {route.destination} total_liters must be positive"
            )


def _validate_standards(config: FuelConfigurationSet, result: ConfigValidationResult) -> None:
    standards = config.standard_allocations
    for name, value in vars(standards).items():
        if value < 0:
            result.add_error(f"Standard allocation {name} is negative: {value}")
    for special in config.special_destinations:
        if special.zambia_going_liters < 0:
            result.add_error(f"Special destination {special.name} has negative liters")
    if config.zambia_going_reserve < 0:
        result.add_error("zambia_going_reserve is negative")


def _validate_zambia_return(config: FuelConfigurationSet, result: ConfigValidationResult) -> None:
    if config.zambia_return_total < 0:
        result.add_error("Zambia return total is negative")
    if config.zambia_return_stations:
        station_total = sum(
            (s.liters for s in config.zambia_return_stations), Decimal(0)
        )
        if station_total != config.zambia_return_total:
            result.add_error(
                f"Zambia return stations add up to {station_total}, "
                f"total is {config.zambia_return_total}"
            )
