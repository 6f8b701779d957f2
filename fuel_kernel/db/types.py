"""
Module: fuel_kernel.db.types
Responsibility: Column types and helpers for fuel quantities.  Centralizes
    precision and rounding so that every model and service uses identical
    liter arithmetic.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats in the ledger.  Quantities are Decimal liters with exactly
      three decimal places (milliliters) and are persisted as integer
      milliliters, so every backend stores them exactly.
    - quantize_liters() is the ONLY sanctioned rounding function.

Failure modes:
    - ValueError from to_liters() on non-numeric or non-finite input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import BigInteger, String
from sqlalchemy import Enum as SAEnum
from sqlalchemy.types import TypeDecorator

LITERS_DECIMAL_PLACES = 3
_LITERS_QUANTUM = Decimal(1).scaleb(-LITERS_DECIMAL_PLACES)
_MILLILITERS_PER_LITER = Decimal(10) ** LITERS_DECIMAL_PLACES

# Verification tooling treats balances within this many liters as equal.
BALANCE_TOLERANCE = Decimal("0.01")

ZERO_LITERS = Decimal("0.000")

# Truck number in canonical form (e.g. "T123 DNH")
TruckNumber = Annotated[str, String(30)]

# Delivery order reference
DONumber = Annotated[str, String(50)]


def quantize_liters(value: Decimal) -> Decimal:
    """Round a liter quantity to milliliter precision (ROUND_HALF_UP)."""
    return value.quantize(_LITERS_QUANTUM, rounding=ROUND_HALF_UP)


def to_liters(value: object) -> Decimal:
    """
    Convert an int, str or Decimal to a quantized liter Decimal.

    Floats are accepted through their string form so that 44.1 becomes
    Decimal("44.100") rather than its binary expansion.

    Raises:
        ValueError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a liter quantity: {value!r}")
    if isinstance(value, float):
        value = repr(value)
    try:
        dec = Decimal(value)  # type: ignore[arg-type]
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Not a liter quantity: {value!r}") from exc
    if not dec.is_finite():
        raise ValueError(f"Not a liter quantity: {value!r}")
    return quantize_liters(dec)


def liters_to_milliliters(value: Decimal) -> int:
    """Convert liters to integer milliliters."""
    return int(quantize_liters(value) * _MILLILITERS_PER_LITER)


def milliliters_to_liters(value: int) -> Decimal:
    """Convert integer milliliters to quantized liters."""
    return quantize_liters(Decimal(value) / _MILLILITERS_PER_LITER)


class Liters(TypeDecorator):
    """
    Liter quantity stored as BigInteger milliliters.

    Transparently converts Decimal liters to integer milliliters on bind and
    back on load, so slot values and balances survive any backend exactly.
    """

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert liters to milliliters when storing."""
        if value is None:
            return None
        return liters_to_milliliters(to_liters(value))

    def process_result_value(self, value, dialect):
        """Convert milliliters back to liters when loading."""
        if value is None:
            return None
        return milliliters_to_liters(value)


def enum_type(enum_cls: type, length: int = 30) -> SAEnum:
    """
    Non-native enum column storing member values ("pending", "DAR YARD").

    Loads back as enum members, so ``record.status.value`` is always safe.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        create_constraint=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
