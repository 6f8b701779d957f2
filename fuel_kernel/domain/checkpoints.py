"""
Checkpoints -- the closed set of journey slots and the yards that feed them.

Responsibility:
    Defines the fixed checkpoint sequence of a truck journey, which leg each
    checkpoint belongs to, and how free-form checkpoint, station and yard
    names resolve to exactly one slot.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Every Checkpoint maps to exactly one slot column on JourneyRecord; the
      enum value IS the column name.
    - SLOT_ORDER is the canonical slot order (yard, going, return).
    - Only the three fixed yards accept dispense events.

Failure modes:
    - UnknownCheckpointError from resolve_checkpoint() for names that map to
      no slot.
    - UnknownYardError from resolve_yard() / yard_for_role().
"""

import re
from enum import Enum

from fuel_kernel.exceptions import UnknownCheckpointError, UnknownYardError


class Leg(str, Enum):
    """Part of the route a checkpoint belongs to."""

    YARD = "yard"
    GOING = "going"
    RETURN = "return"


class Checkpoint(str, Enum):
    """A fuel slot on a journey record."""

    # Yards
    MMSA_YARD = "mmsa_yard"
    TANGA_YARD = "tanga_yard"
    DAR_YARD = "dar_yard"

    # Going leg
    DAR_GOING = "dar_going"
    MORO_GOING = "moro_going"
    MBEYA_GOING = "mbeya_going"
    TDM_GOING = "tdm_going"
    ZAMBIA_GOING = "zambia_going"
    CONGO_FUEL = "congo_fuel"

    # Return leg
    ZAMBIA_RETURN = "zambia_return"
    TUNDUMA_RETURN = "tunduma_return"
    MBEYA_RETURN = "mbeya_return"
    MORO_RETURN = "moro_return"
    DAR_RETURN = "dar_return"
    TANGA_RETURN = "tanga_return"

    @property
    def slot(self) -> str:
        """Column name on JourneyRecord."""
        return self.value

    @property
    def leg(self) -> Leg:
        return CHECKPOINT_LEGS[self]

    @property
    def is_yard(self) -> bool:
        return CHECKPOINT_LEGS[self] is Leg.YARD


SLOT_ORDER: tuple[Checkpoint, ...] = tuple(Checkpoint)

CHECKPOINT_LEGS: dict[Checkpoint, Leg] = {
    Checkpoint.MMSA_YARD: Leg.YARD,
    Checkpoint.TANGA_YARD: Leg.YARD,
    Checkpoint.DAR_YARD: Leg.YARD,
    Checkpoint.DAR_GOING: Leg.GOING,
    Checkpoint.MORO_GOING: Leg.GOING,
    Checkpoint.MBEYA_GOING: Leg.GOING,
    Checkpoint.TDM_GOING: Leg.GOING,
    Checkpoint.ZAMBIA_GOING: Leg.GOING,
    Checkpoint.CONGO_FUEL: Leg.GOING,
    Checkpoint.ZAMBIA_RETURN: Leg.RETURN,
    Checkpoint.TUNDUMA_RETURN: Leg.RETURN,
    Checkpoint.MBEYA_RETURN: Leg.RETURN,
    Checkpoint.MORO_RETURN: Leg.RETURN,
    Checkpoint.DAR_RETURN: Leg.RETURN,
    Checkpoint.TANGA_RETURN: Leg.RETURN,
}

RETURN_CHECKPOINTS: frozenset[Checkpoint] = frozenset(
    cp for cp, leg in CHECKPOINT_LEGS.items() if leg is Leg.RETURN
)


class Yard(str, Enum):
    """Fuel yards where dispense events are recorded."""

    DAR = "DAR YARD"
    TANGA = "TANGA YARD"
    MMSA = "MMSA YARD"

    @property
    def checkpoint(self) -> Checkpoint:
        return YARD_CHECKPOINTS[self]


YARD_CHECKPOINTS: dict[Yard, Checkpoint] = {
    Yard.DAR: Checkpoint.DAR_YARD,
    Yard.TANGA: Checkpoint.TANGA_YARD,
    Yard.MMSA: Checkpoint.MMSA_YARD,
}

# Yard staff accounts are scoped to one yard by role.
ROLE_YARDS: dict[str, Yard] = {
    "dar_yard": Yard.DAR,
    "tanga_yard": Yard.TANGA,
    "mmsa_yard": Yard.MMSA,
}

# Station names used on fuel orders that are not checkpoint codes.
STATION_ALIASES: dict[str, Checkpoint] = {
    "LAKE_NDOLA": Checkpoint.ZAMBIA_RETURN,
    "LAKE_KAPIRI": Checkpoint.ZAMBIA_RETURN,
    "TUNDUMA_GOING": Checkpoint.TDM_GOING,
    "TDM_RETURN": Checkpoint.TUNDUMA_RETURN,
    "MSA_YARD": Checkpoint.MMSA_YARD,
    "MOMBASA_YARD": Checkpoint.MMSA_YARD,
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z])(?=[A-Z])")
_SEPARATORS = re.compile(r"[\s\-]+")


def _normalize_key(name: str) -> str:
    # "darYard", "DAR YARD", "dar-yard" and "DAR_YARD" all become "DAR_YARD"
    key = _CAMEL_BOUNDARY.sub("_", name.strip())
    return _SEPARATORS.sub("_", key).upper()


def resolve_checkpoint(name: "str | Checkpoint | Yard") -> Checkpoint:
    """
    Resolve a checkpoint code, slot name, station alias or yard to its slot.

    Raises:
        UnknownCheckpointError: If the name maps to no slot.
    """
    if isinstance(name, Checkpoint):
        return name
    if isinstance(name, Yard):
        return name.checkpoint
    if not isinstance(name, str) or not name.strip():
        raise UnknownCheckpointError(name)

    key = _normalize_key(name)
    if key in Checkpoint.__members__:
        return Checkpoint[key]
    if key in STATION_ALIASES:
        return STATION_ALIASES[key]
    raise UnknownCheckpointError(name)


def resolve_yard(name: "str | Yard") -> Yard:
    """
    Resolve a yard name ("DAR YARD", "dar yard", "DAR_YARD") to a Yard.

    Raises:
        UnknownYardError: If the name is not one of the fixed yards.
    """
    if isinstance(name, Yard):
        return name
    if not isinstance(name, str):
        raise UnknownYardError(name)
    label = _normalize_key(name).replace("_", " ")
    for yard in Yard:
        if yard.value == label:
            return yard
    raise UnknownYardError(name)


def yard_for_role(role: str) -> Yard:
    """Yard a yard-staff role is scoped to."""
    try:
        return ROLE_YARDS[role.strip().lower()]
    except (KeyError, AttributeError):
        raise UnknownYardError(role) from None
