"""Canonical truck numbers ("T123 DNH") and their batch suffixes."""

import re

from fuel_kernel.exceptions import InvalidTruckNumberError

_SEPARATORS = re.compile(r"[\s\-]+")
_PLATE = re.compile(r"T?(\d+)([A-Z]+)")
_ALLOWED = re.compile(r"[A-Z0-9][A-Z0-9/]*")


def normalize_truck_number(raw: object) -> str:
    """
    Canonical form of a truck number as typed by yard or office staff.

    Whitespace and hyphens are dropped before anything else, so
    "t123dnh", "T 123 DNH", "T123-DNH" and "123DNH" all become "T123 DNH".
    Numbers that do not look like a Tanzanian plate are uppercased and kept
    compact: "TEST 001ABC" and "test001abc" both become "TEST001ABC".

    Raises:
        InvalidTruckNumberError: On empty or non-alphanumeric input.
    """
    if not isinstance(raw, str):
        raise InvalidTruckNumberError(raw)

    compact = _SEPARATORS.sub("", raw).upper()
    if not compact:
        raise InvalidTruckNumberError(raw)

    plate = _PLATE.fullmatch(compact)
    if plate:
        return f"T{plate.group(1)} {plate.group(2)}"

    if not _ALLOWED.fullmatch(compact):
        raise InvalidTruckNumberError(raw)
    return compact


def truck_suffix(truck_no: str) -> str:
    """Lowercase batch suffix: the last space-separated group ("dnh")."""
    return normalize_truck_number(truck_no).split(" ")[-1].lower()
