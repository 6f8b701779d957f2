"""
JourneyLedger -- the allocation/consumption value object of a journey.

Responsibility:
    Holds a journey's total and extra liters plus the fifteen checkpoint slot
    values, and derives the running balance from them.  It is the only place
    the balance formula lives.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Consumed by services/ledger_service.py (persistence) and
    selectors/balance_verifier.py (verification tooling).

Invariants enforced:
    - balance = (total + extra) - sum(|slot|), missing total/extra count as
      zero.  Positive is surplus, negative is overdraft.
    - Slot values only change through with_posting(); every instance is
      frozen.
    - All arithmetic is Decimal quantized to milliliters; no tolerance.

Failure modes:
    - ValueError from to_liters() on non-numeric quantities.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Any

from fuel_kernel.db.types import ZERO_LITERS, quantize_liters, to_liters
from fuel_kernel.domain.checkpoints import SLOT_ORDER, Checkpoint


def compute_balance(
    total_liters: Decimal | None,
    extra_liters: Decimal | None,
    slot_values: "Mapping[Checkpoint, Decimal] | Any",
) -> Decimal:
    """Balance over any mapping of checkpoint to liters."""
    budget = (total_liters or ZERO_LITERS) + (extra_liters or ZERO_LITERS)
    consumption = sum((abs(v) for v in slot_values.values()), ZERO_LITERS)
    return quantize_liters(budget - consumption)


@dataclass(frozen=True)
class JourneyLedger:
    """
    Immutable snapshot of a journey's fuel ledger.

    Use ``JourneyLedger.create()`` or ``from_record()`` rather than the
    constructor so that every slot is present and quantized.
    """

    total_liters: Decimal | None
    extra_liters: Decimal | None
    slots: Mapping[Checkpoint, Decimal] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        total_liters: Any = None,
        extra_liters: Any = None,
        slots: Mapping[Checkpoint, Any] | None = None,
    ) -> "JourneyLedger":
        given = dict(slots or {})
        values = {
            cp: to_liters(given.get(cp, ZERO_LITERS)) for cp in SLOT_ORDER
        }
        return cls(
            total_liters=None if total_liters is None else to_liters(total_liters),
            extra_liters=None if extra_liters is None else to_liters(extra_liters),
            slots=MappingProxyType(values),
        )

    @classmethod
    def from_record(cls, record: Any) -> "JourneyLedger":
        """Snapshot of a JourneyRecord (or anything with slot attributes)."""
        return cls.create(
            total_liters=record.total_liters,
            extra_liters=record.extra_liters,
            slots={cp: getattr(record, cp.slot) for cp in SLOT_ORDER},
        )

    @property
    def budget(self) -> Decimal:
        return quantize_liters(
            (self.total_liters or ZERO_LITERS) + (self.extra_liters or ZERO_LITERS)
        )

    @property
    def consumption(self) -> Decimal:
        return quantize_liters(
            sum((abs(v) for v in self.slots.values()), ZERO_LITERS)
        )

    @property
    def balance(self) -> Decimal:
        return compute_balance(self.total_liters, self.extra_liters, self.slots)

    def slot(self, checkpoint: Checkpoint) -> Decimal:
        return self.slots.get(checkpoint, ZERO_LITERS)

    def with_posting(self, checkpoint: Checkpoint, quantity: Any) -> "JourneyLedger":
        """New ledger with ``quantity`` (signed) added to one slot."""
        values = dict(self.slots)
        values[checkpoint] = quantize_liters(self.slot(checkpoint) + to_liters(quantity))
        return JourneyLedger(
            total_liters=self.total_liters,
            extra_liters=self.extra_liters,
            slots=MappingProxyType(values),
        )

    def with_configuration(
        self,
        total_liters: Any = None,
        extra_liters: Any = None,
    ) -> "JourneyLedger":
        """New ledger with total/extra replaced; None keeps the current value."""
        return JourneyLedger(
            total_liters=(
                self.total_liters if total_liters is None else to_liters(total_liters)
            ),
            extra_liters=(
                self.extra_liters if extra_liters is None else to_liters(extra_liters)
            ),
            slots=self.slots,
        )

    def slot_columns(self) -> dict[str, Decimal]:
        """Slot values keyed by JourneyRecord column name."""
        return {cp.slot: self.slot(cp) for cp in SLOT_ORDER}
