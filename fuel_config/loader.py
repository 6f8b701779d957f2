"""
Configuration Loader (``fuel_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``fuel_config.schema`` dataclasses.  Runtime callers go through
``fuel_config.get_active_config()``.

Invariants enforced
-------------------
* Liter quantities are parsed to ``Decimal`` through their string form;
  floats never enter the configuration.
* Truck suffixes are stored lowercase, destinations uppercase with single
  spaces.
* ``compute_checksum`` produces a deterministic SHA-256 hash for
  configuration identity and change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Non-numeric quantities  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from fuel_config.schema import (
    DestinationOverride,
    FuelConfigurationSet,
    ReturnStation,
    RouteBudget,
    SpecialDestination,
    StandardAllocations,
    TruckBatch,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_liters(value: Any) -> Decimal:
    """Parse a liter quantity from YAML (int, float or numeric string)."""
    if isinstance(value, bool) or value is None:
        raise ValueError(f"Cannot parse liters from {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Cannot parse liters from {value!r}") from exc


def _destination(value: str) -> str:
    return " ".join(str(value).upper().split())


def parse_truck_batches(data: list[dict[str, Any]]) -> tuple[TruckBatch, ...]:
    return tuple(
        TruckBatch(
            extra_liters=parse_liters(b["extra_liters"]),
            suffixes=tuple(str(s).strip().lower() for s in b.get("suffixes", ())),
        )
        for b in data
    )


def parse_destination_overrides(data: list[dict[str, Any]]) -> tuple[DestinationOverride, ...]:
    return tuple(
        DestinationOverride(
            truck_suffix=str(o["truck_suffix"]).strip().lower(),
            destination=_destination(o["destination"]),
            extra_liters=parse_liters(o["extra_liters"]),
        )
        for o in data
    )


def parse_standard_allocations(data: dict[str, Any]) -> StandardAllocations:
    return StandardAllocations(
        tanga_yard_to_dar=parse_liters(data["tanga_yard_to_dar"]),
        dar_yard_standard=parse_liters(data["dar_yard_standard"]),
        dar_yard_kisarawe=parse_liters(data["dar_yard_kisarawe"]),
        mbeya_going=parse_liters(data["mbeya_going"]),
        tunduma_return=parse_liters(data["tunduma_return"]),
        mbeya_return=parse_liters(data["mbeya_return"]),
        moro_return_to_mombasa=parse_liters(data["moro_return_to_mombasa"]),
        tanga_return_to_mombasa=parse_liters(data["tanga_return_to_mombasa"]),
    )


def parse_configuration(data: dict[str, Any]) -> FuelConfigurationSet:
    """
    Parse a ``FuelConfigurationSet`` from a dict.

    Raises:
        KeyError: if required keys are missing.
        ValueError: if a quantity cannot be parsed.
    """
    zambia_return = data.get("zambia_return", {})
    stations = tuple(
        ReturnStation(name=_destination(s["name"]), liters=parse_liters(s["liters"]))
        for s in zambia_return.get("stations", ())
    )
    if "total" in zambia_return:
        zambia_return_total = parse_liters(zambia_return["total"])
    else:
        zambia_return_total = sum((s.liters for s in stations), Decimal(0))

    return FuelConfigurationSet(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        truck_batches=parse_truck_batches(data.get("truck_batches", [])),
        route_totals=tuple(
            RouteBudget(destination=_destination(dest), total_liters=parse_liters(liters))
            for dest, liters in (data.get("route_totals") or {}).items()
        ),
        standard_allocations=parse_standard_allocations(data["standard_allocations"]),
        zambia_return_total=zambia_return_total,
        zambia_going_reserve=parse_liters(data["zambia_going_reserve"]),
        destination_overrides=parse_destination_overrides(
            data.get("destination_overrides") or []
        ),
        special_destinations=tuple(
            SpecialDestination(name=_destination(name), zambia_going_liters=parse_liters(liters))
            for name, liters in (data.get("special_destinations") or {}).items()
        ),
        zambia_return_stations=stations,
        mombasa_markers=tuple(
            str(m).upper() for m in data.get("mombasa_markers", ("MOMBASA", "MSA"))
        ),
        checksum=compute_checksum(data),
    )


def load_configuration(path: Path) -> FuelConfigurationSet:
    """Load and parse one configuration file."""
    return parse_configuration(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
