"""
fuel_config -- single public entrypoint for fleet fuel configuration.

Responsibility:
    Provides the ONLY way to obtain fuel configuration at runtime through
    ``get_active_config()``.  Returns a validated ``FuelConfigurationSet``;
    ``fuel_config.bridges.build_configuration_lookup`` turns it into the
    kernel's ``ConfigurationLookup``.

Architecture position:
    Configuration -- YAML-driven, validated on load.  Sits above
    ``fuel_kernel``; the kernel MUST NEVER import from ``fuel_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``FUEL_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying every locked or unlocked journey back to the exact
    configuration that governed it.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from fuel_config.loader import load_configuration
from fuel_config.schema import FuelConfigurationSet
from fuel_config.validator import validate_configuration

_logger = logging.getLogger("fuel_kernel.config")

CONFIG_PATH_ENV = "FUEL_CONFIG_PATH"

# Default configuration file
DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> FuelConfigurationSet:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``FUEL_CONFIG_PATH`` environment variable, then the bundled
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    config_path = Path(path or os.environ.get(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH)

    config = load_configuration(config_path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})

    _logger.info(
        "FUEL_CONFIG_TRACE",
        extra={
            "trace_type": "FUEL_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "config_path": str(config_path),
            "truck_batch_count": len(config.truck_batches),
            "route_count": len(config.route_totals),
        },
    )

    return config


__all__ = ["get_active_config", "FuelConfigurationSet", "CONFIG_PATH_ENV"]
