"""
CheckpointAllocator -- which slot a posting lands on, and how much.

Responsibility:
    Turns a dispense or checkpoint entry into a signed slot quantity, and
    plans the initial slot quantities for a new journey (going leg) or a
    newly attached return leg.  Also decides whether a journey must be
    locked for missing configuration.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Reads configuration
    only through ConfigurationLookup.

Invariants enforced:
    - Yard dispensing draws the yard slot down: the signed quantity is
      -liters.  Station checkpoints post +liters.
    - Return-leg checkpoints apply only to journeys with a return DO.
    - Configuration-dependent standards are refused on locked journeys.
    - Standard quantities come from configuration, never from literals here.

Failure modes:
    - InvalidLitersError for non-positive or non-numeric liters.
    - CheckpointNotApplicableError for return slots on going-only journeys.
    - MissingQuantityError when no liters are given and the checkpoint has
      no standard.
    - JourneyLockedError for configuration-dependent standards on a locked
      journey.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Callable
from uuid import UUID

from fuel_kernel.db.types import ZERO_LITERS, quantize_liters, to_liters
from fuel_kernel.domain.checkpoints import (
    RETURN_CHECKPOINTS,
    Checkpoint,
    Yard,
)
from fuel_kernel.domain.config_lookup import (
    ConfigurationLookup,
    ExtraFuelResolution,
    FuelStandards,
)
from fuel_kernel.domain.dtos import PendingConfigReason, pending_config_reason
from fuel_kernel.domain.ledger import JourneyLedger
from fuel_kernel.exceptions import (
    CheckpointNotApplicableError,
    InvalidLitersError,
    JourneyLockedError,
    MissingQuantityError,
)


class AllocationBasis(str, Enum):
    YARD_DRAWDOWN = "yard_drawdown"
    EXPLICIT = "explicit"
    STANDARD = "standard"
    REMAINING_BUDGET = "remaining_budget"
    SPECIAL_DESTINATION = "special_destination"
    ROUTE_FORMULA = "route_formula"
    REVERSAL = "reversal"


class LoadingPoint(str, Enum):
    """Where a truck takes its first fuel for the going leg."""

    DAR_YARD = "dar_yard"
    KISARAWE = "kisarawe"
    DAR_STATION = "dar_station"


@dataclass(frozen=True)
class JourneyRoute:
    """The routing facts of a journey the allocator needs."""

    journey_id: UUID | None
    going_do: str
    destination: str | None = None
    start: str | None = None
    return_do: str | None = None
    is_locked: bool = False
    pending_config_reason: PendingConfigReason | None = None

    @property
    def has_return_leg(self) -> bool:
        return bool(self.return_do)

    @classmethod
    def from_record(cls, record: Any) -> "JourneyRoute":
        return cls(
            journey_id=record.id,
            going_do=record.going_do,
            destination=record.destination,
            start=record.start,
            return_do=record.return_do,
            is_locked=record.is_locked,
            pending_config_reason=record.pending_config_reason,
        )


@dataclass(frozen=True)
class Allocation:
    """A signed quantity to add to one slot."""

    checkpoint: Checkpoint
    quantity: Decimal
    basis: AllocationBasis

    @property
    def slot(self) -> str:
        return self.checkpoint.slot


@dataclass(frozen=True)
class RemainingBudgetRule:
    """``checkpoint`` gets ``max(0, standard - |prior slot|)``."""

    checkpoint: Checkpoint
    prior: Checkpoint
    standard: Callable[[FuelStandards], Decimal]


REMAINING_BUDGET_RULES: dict[Checkpoint, RemainingBudgetRule] = {
    Checkpoint.MBEYA_RETURN: RemainingBudgetRule(
        checkpoint=Checkpoint.MBEYA_RETURN,
        prior=Checkpoint.TUNDUMA_RETURN,
        standard=lambda s: s.mbeya_return,
    ),
}

# Standards that hold for every route
FIXED_STANDARDS: dict[Checkpoint, Callable[[FuelStandards], Decimal]] = {
    Checkpoint.MBEYA_GOING: lambda s: s.mbeya_going,
    Checkpoint.TUNDUMA_RETURN: lambda s: s.tunduma_return,
    Checkpoint.ZAMBIA_RETURN: lambda s: s.zambia_return_total,
}

# Standards that hold only when the destination is Mombasa
MOMBASA_STANDARDS: dict[Checkpoint, Callable[[FuelStandards], Decimal]] = {
    Checkpoint.MORO_RETURN: lambda s: s.moro_return_to_mombasa,
    Checkpoint.TANGA_RETURN: lambda s: s.tanga_return_to_mombasa,
}


@dataclass(frozen=True)
class ConfigurationResolution:
    """Total/extra liters for a new journey and the resulting lock state."""

    total_liters: Decimal | None
    extra_liters: Decimal | None
    extra_fuel: ExtraFuelResolution
    pending_config_reason: PendingConfigReason | None

    @property
    def is_locked(self) -> bool:
        return self.pending_config_reason is not None


def require_positive_liters(liters: Any) -> Decimal:
    """Validated liter quantity (> 0)."""
    if liters is None:
        raise InvalidLitersError(liters, "liters are required")
    try:
        value = to_liters(liters)
    except ValueError:
        raise InvalidLitersError(liters, "liters must be a number") from None
    if value <= ZERO_LITERS:
        raise InvalidLitersError(liters)
    return value


def month_tag(trip_date: date) -> str:
    """Month label stored on journey records ("November 2025")."""
    return trip_date.strftime("%B %Y")


class CheckpointAllocator:
    """
    Computes slot postings for a journey.

    Contract:
        Stateless apart from the injected ConfigurationLookup.  Never reads
        or writes the database; callers hand in a JourneyRoute and the
        current JourneyLedger.
    """

    def __init__(self, lookup: ConfigurationLookup):
        self._lookup = lookup

    @property
    def lookup(self) -> ConfigurationLookup:
        return self._lookup

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def resolve_configuration(
        self,
        truck_no: str,
        destination: str | None,
        total_liters: Any = None,
        extra_liters: Any = None,
    ) -> ConfigurationResolution:
        """Explicit values win; otherwise route budget and batch extra."""
        extra_fuel = self._lookup.resolve_extra_fuel(truck_no, destination)
        total = (
            to_liters(total_liters)
            if total_liters is not None
            else self._lookup.resolve_total_liters(destination)
        )
        extra = (
            to_liters(extra_liters)
            if extra_liters is not None
            else extra_fuel.extra_liters
        )
        return ConfigurationResolution(
            total_liters=total,
            extra_liters=extra,
            extra_fuel=extra_fuel,
            pending_config_reason=pending_config_reason(total, extra),
        )

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def allocate_yard_dispense(self, yard: Yard, liters: Any) -> Allocation:
        """Yard dispense: draw the yard's slot down by ``liters``."""
        value = require_positive_liters(liters)
        return Allocation(
            checkpoint=yard.checkpoint,
            quantity=-value,
            basis=AllocationBasis.YARD_DRAWDOWN,
        )

    def allocate(
        self,
        checkpoint: Checkpoint,
        route: JourneyRoute,
        ledger: JourneyLedger,
        liters: Any = None,
    ) -> Allocation:
        """
        Posting for a checkpoint entry on a journey.

        With explicit liters the quantity is signed by checkpoint kind.
        Without, the checkpoint's standard applies.
        """
        self._check_applicable(checkpoint, route)

        if liters is not None:
            value = require_positive_liters(liters)
            if checkpoint.is_yard:
                return Allocation(checkpoint, -value, AllocationBasis.YARD_DRAWDOWN)
            return Allocation(checkpoint, value, AllocationBasis.EXPLICIT)

        return self._standard_allocation(checkpoint, route, ledger)

    def reversal_of(self, checkpoint: Checkpoint, posted_quantity: Decimal) -> Allocation:
        """The posting that exactly undoes ``posted_quantity``."""
        return Allocation(
            checkpoint=checkpoint,
            quantity=-quantize_liters(posted_quantity),
            basis=AllocationBasis.REVERSAL,
        )

    def _check_applicable(self, checkpoint: Checkpoint, route: JourneyRoute) -> None:
        if checkpoint in RETURN_CHECKPOINTS and not route.has_return_leg:
            raise CheckpointNotApplicableError(
                checkpoint=checkpoint.name,
                going_do=route.going_do,
                reason="journey has no return delivery order",
            )

    def _standard_allocation(
        self,
        checkpoint: Checkpoint,
        route: JourneyRoute,
        ledger: JourneyLedger,
    ) -> Allocation:
        standards = self._lookup.standards

        rule = REMAINING_BUDGET_RULES.get(checkpoint)
        if rule is not None:
            remaining = rule.standard(standards) - abs(ledger.slot(rule.prior))
            return Allocation(
                checkpoint,
                max(ZERO_LITERS, quantize_liters(remaining)),
                AllocationBasis.REMAINING_BUDGET,
            )

        if checkpoint in FIXED_STANDARDS:
            return Allocation(
                checkpoint,
                quantize_liters(FIXED_STANDARDS[checkpoint](standards)),
                AllocationBasis.STANDARD,
            )

        if checkpoint in MOMBASA_STANDARDS and self._lookup.is_mombasa_destination(
            route.destination
        ):
            return Allocation(
                checkpoint,
                quantize_liters(MOMBASA_STANDARDS[checkpoint](standards)),
                AllocationBasis.STANDARD,
            )

        if checkpoint is Checkpoint.ZAMBIA_GOING:
            return self._zambia_going(route, ledger)

        raise MissingQuantityError(checkpoint.name)

    def _zambia_going(self, route: JourneyRoute, ledger: JourneyLedger) -> Allocation:
        special = self._lookup.special_zambia_going(route.destination)
        if special is not None:
            return Allocation(
                Checkpoint.ZAMBIA_GOING,
                quantize_liters(special),
                AllocationBasis.SPECIAL_DESTINATION,
            )

        if route.is_locked:
            raise JourneyLockedError(
                journey_id=str(route.journey_id),
                pending_config_reason=(
                    route.pending_config_reason.value
                    if route.pending_config_reason
                    else None
                ),
                operation="ZAMBIA_GOING standard allocation",
            )

        reserve = self._lookup.standards.zambia_going_reserve
        quantity = ledger.budget - reserve
        return Allocation(
            Checkpoint.ZAMBIA_GOING,
            max(ZERO_LITERS, quantize_liters(quantity)),
            AllocationBasis.ROUTE_FORMULA,
        )

    # ------------------------------------------------------------------
    # Planning
    # ------------------------------------------------------------------

    def plan_going_allocations(
        self,
        loading_point: LoadingPoint | None,
        start: str | None,
        destination: str | None,
        total_liters: Decimal | None,
        extra_liters: Decimal | None,
    ) -> dict[Checkpoint, Decimal]:
        """
        Initial going-leg slot quantities for a new journey.

        Configuration-dependent slots are left out while total or extra
        liters are missing; they are filled once the journey is unlocked.
        """
        standards = self._lookup.standards
        plan: dict[Checkpoint, Decimal] = {}
        configured = total_liters is not None and extra_liters is not None

        if start and "TANGA" in start.upper():
            plan[Checkpoint.TANGA_YARD] = standards.tanga_yard_to_dar

        if loading_point is LoadingPoint.DAR_YARD:
            plan[Checkpoint.DAR_YARD] = standards.dar_yard_standard
            plan[Checkpoint.MBEYA_GOING] = standards.mbeya_going
        elif loading_point is LoadingPoint.KISARAWE:
            plan[Checkpoint.DAR_YARD] = standards.dar_yard_kisarawe
            plan[Checkpoint.MBEYA_GOING] = standards.mbeya_going
        elif loading_point is LoadingPoint.DAR_STATION:
            if total_liters is not None:
                plan[Checkpoint.DAR_GOING] = total_liters
                plan[Checkpoint.MBEYA_GOING] = (
                    total_liters - standards.dar_yard_standard + standards.mbeya_going
                )
        else:
            plan[Checkpoint.MBEYA_GOING] = standards.mbeya_going

        special = self._lookup.special_zambia_going(destination)
        if special is not None:
            plan[Checkpoint.ZAMBIA_GOING] = special
        elif configured:
            plan[Checkpoint.ZAMBIA_GOING] = max(
                ZERO_LITERS,
                total_liters + extra_liters - standards.zambia_going_reserve,
            )

        return {cp: quantize_liters(q) for cp, q in plan.items()}

    def plan_return_allocations(self, destination: str | None) -> dict[Checkpoint, Decimal]:
        """Initial return-leg slot quantities once a return DO is attached."""
        standards = self._lookup.standards
        tunduma = standards.tunduma_return
        plan: dict[Checkpoint, Decimal] = {
            Checkpoint.ZAMBIA_RETURN: standards.zambia_return_total,
            Checkpoint.TUNDUMA_RETURN: tunduma,
            Checkpoint.MBEYA_RETURN: max(ZERO_LITERS, standards.mbeya_return - tunduma),
        }
        if self._lookup.is_mombasa_destination(destination):
            plan[Checkpoint.MORO_RETURN] = standards.moro_return_to_mombasa
            plan[Checkpoint.TANGA_RETURN] = standards.tanga_return_to_mombasa
        return {cp: quantize_liters(q) for cp, q in plan.items()}
