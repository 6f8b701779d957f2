"""
Config -> Kernel Bridges.

Converts a validated FuelConfigurationSet into the kernel's
ConfigurationLookup.  Lives in fuel_config (the producer) because the
kernel never imports fuel_config.

Usage:
    from fuel_config import get_active_config
    from fuel_config.bridges import build_configuration_lookup

    lookup = build_configuration_lookup(get_active_config())
"""

from __future__ import annotations

from fuel_config.schema import FuelConfigurationSet
from fuel_kernel.domain.config_lookup import ConfigurationLookup, FuelStandards


def build_fuel_standards(config: FuelConfigurationSet) -> FuelStandards:
    standards = config.standard_allocations
    return FuelStandards(
        tanga_yard_to_dar=standards.tanga_yard_to_dar,
        dar_yard_standard=standards.dar_yard_standard,
        dar_yard_kisarawe=standards.dar_yard_kisarawe,
        mbeya_going=standards.mbeya_going,
        tunduma_return=standards.tunduma_return,
        mbeya_return=standards.mbeya_return,
        moro_return_to_mombasa=standards.moro_return_to_mombasa,
        tanga_return_to_mombasa=standards.tanga_return_to_mombasa,
        zambia_return_total=config.zambia_return_total,
        zambia_going_reserve=config.zambia_going_reserve,
    )


def build_configuration_lookup(config: FuelConfigurationSet) -> ConfigurationLookup:
    """Build the kernel lookup from a configuration set."""
    return ConfigurationLookup(
        batch_extras={
            suffix: batch.extra_liters
            for batch in config.truck_batches
            for suffix in batch.suffixes
        },
        route_totals={r.destination: r.total_liters for r in config.route_totals},
        standards=build_fuel_standards(config),
        destination_overrides={
            (o.truck_suffix, o.destination): o.extra_liters
            for o in config.destination_overrides
        },
        special_destinations={
            s.name: s.zambia_going_liters for s in config.special_destinations
        },
        mombasa_markers=config.mombasa_markers,
        config_id=config.config_id,
        config_version=config.version,
    )
