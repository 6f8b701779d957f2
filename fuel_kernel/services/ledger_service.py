"""
LedgerService -- atomic slot postings and balance reconciliation.

Responsibility:
    Persists every change to a journey's slots, budget or status as one
    compare-and-swap UPDATE, and keeps the stored balance equal to the
    balance derived from the slots.

Architecture position:
    Kernel > Services -- imperative shell.  Balance arithmetic lives in
    domain/ledger.py; this service only reads, recomputes and writes.

Invariants enforced:
    - Every write is ``UPDATE ... WHERE id = :id AND version = :expected``
      (plus ``NOT is_cancelled AND NOT is_deleted`` for postings) and bumps
      version.  A concurrent writer can never be overwritten.
    - A slot and the balance derived from it are written in the same
      statement.
    - reconcile() is idempotent: a second call writes nothing.

Failure modes:
    - JourneyNotFoundError: the record does not exist.
    - JourneyUnavailableError: the record was cancelled or deleted before
      the write landed.
    - OptimisticLockError: the version kept moving for MAX_CAS_ATTEMPTS
      attempts.

Audit relevance:
    Logs slot_posted / balance_reconciled / ledger_version_conflict with
    the journey id, slot, quantity and resulting balance.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fuel_kernel.domain.allocator import Allocation
from fuel_kernel.domain.checkpoints import Checkpoint
from fuel_kernel.domain.clock import Clock
from fuel_kernel.domain.dtos import pending_config_reason
from fuel_kernel.domain.ledger import JourneyLedger
from fuel_kernel.exceptions import (
    JourneyNotFoundError,
    JourneyUnavailableError,
    OptimisticLockError,
)
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.journey import JourneyRecord
from fuel_kernel.services.base import BaseService

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class SlotChange:
    checkpoint: Checkpoint
    quantity: Decimal
    before: Decimal
    after: Decimal


@dataclass(frozen=True)
class LedgerUpdate:
    """What one compare-and-swap write changed."""

    journey_id: UUID
    going_do: str
    changes: tuple[SlotChange, ...]
    balance_before: Decimal
    balance_after: Decimal
    version: int

    def change_for(self, checkpoint: Checkpoint) -> SlotChange | None:
        for change in self.changes:
            if change.checkpoint is checkpoint:
                return change
        return None


class LedgerService(BaseService):
    """
    Compare-and-swap writer for JourneyRecord.

    Contract:
        Callers describe a change as a function of the freshly read record;
        the service re-reads and re-applies it until the guarded UPDATE
        lands or the attempt budget is spent.
    """

    MAX_CAS_ATTEMPTS = 3

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)

    def fetch(self, journey_id: UUID) -> JourneyRecord | None:
        """Current committed row state, bypassing the identity map."""
        stmt = (
            select(JourneyRecord)
            .where(JourneyRecord.id == journey_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def mutate(
        self,
        journey_id: UUID,
        build_values: Callable[[JourneyRecord, JourneyLedger], dict[str, Any]],
        actor: str,
        require_active: bool = True,
    ) -> JourneyRecord:
        """
        Apply ``build_values(record, ledger)`` as one guarded UPDATE.

        An empty dict from ``build_values`` means there is nothing to write.

        Raises:
            JourneyNotFoundError: If the record does not exist.
            JourneyUnavailableError: If require_active and the record is
                cancelled or deleted.
            OptimisticLockError: If every attempt lost the version race.
        """
        for attempt in range(1, self.MAX_CAS_ATTEMPTS + 1):
            record = self.fetch(journey_id)
            if record is None:
                raise JourneyNotFoundError(str(journey_id))
            if require_active:
                self._ensure_active(record)

            values = build_values(record, JourneyLedger.from_record(record))
            if not values:
                return record

            if self._compare_and_swap(record, values, actor, require_active):
                refreshed = self.fetch(journey_id)
                if refreshed is None:
                    raise JourneyNotFoundError(str(journey_id))
                return refreshed

            logger.warning(
                "ledger_version_conflict",
                extra={
                    "journey_id": str(journey_id),
                    "attempt": attempt,
                    "max_attempts": self.MAX_CAS_ATTEMPTS,
                },
            )

        raise OptimisticLockError("JourneyRecord", str(journey_id))

    def apply_postings(
        self,
        journey_id: UUID,
        allocations: Sequence[Allocation],
        actor: str,
        extra_values: dict[str, Any] | None = None,
        require_active: bool = True,
    ) -> LedgerUpdate:
        """Add each allocation's signed quantity to its slot and rebalance."""
        return self.apply_computed_postings(
            journey_id,
            lambda record, ledger: allocations,
            actor,
            extra_values=extra_values,
            require_active=require_active,
        )

    def apply_computed_postings(
        self,
        journey_id: UUID,
        compute: Callable[[JourneyRecord, JourneyLedger], Sequence[Allocation]],
        actor: str,
        extra_values: dict[str, Any] | None = None,
        require_active: bool = True,
    ) -> LedgerUpdate:
        """
        Post allocations derived from the record as it stands at write time.

        ``compute`` runs once per compare-and-swap attempt against the
        freshly read row, so quantities that depend on other slots (remaining
        budgets, the route formula) follow concurrent postings.  Errors it
        raises propagate unchanged.
        """
        captured: dict[str, Any] = {}

        def build(record: JourneyRecord, ledger: JourneyLedger) -> dict[str, Any]:
            updated = ledger
            changes = []
            for allocation in compute(record, ledger):
                before = updated.slot(allocation.checkpoint)
                updated = updated.with_posting(allocation.checkpoint, allocation.quantity)
                changes.append(
                    SlotChange(
                        checkpoint=allocation.checkpoint,
                        quantity=allocation.quantity,
                        before=before,
                        after=updated.slot(allocation.checkpoint),
                    )
                )
            captured["changes"] = tuple(changes)
            captured["balance_before"] = ledger.balance
            captured["balance_after"] = updated.balance

            values: dict[str, Any] = {
                change.checkpoint.slot: change.after for change in changes
            }
            values["balance"] = updated.balance
            values.update(extra_values or {})
            return values

        record = self.mutate(journey_id, build, actor, require_active)
        result = LedgerUpdate(
            journey_id=record.id,
            going_do=record.going_do,
            changes=captured["changes"],
            balance_before=captured["balance_before"],
            balance_after=captured["balance_after"],
            version=record.version,
        )
        for change in result.changes:
            logger.info(
                "slot_posted",
                extra={
                    "journey_id": str(record.id),
                    "going_do": record.going_do,
                    "slot": change.checkpoint.slot,
                    "quantity": change.quantity,
                    "slot_after": change.after,
                    "balance_after": result.balance_after,
                    "version": result.version,
                },
            )
        return result

    def apply_posting(
        self,
        journey_id: UUID,
        allocation: Allocation,
        actor: str,
    ) -> LedgerUpdate:
        return self.apply_postings(journey_id, [allocation], actor)

    def apply_configuration(
        self,
        journey_id: UUID,
        actor: str,
        total_liters: Decimal | None = None,
        extra_liters: Decimal | None = None,
    ) -> JourneyRecord:
        """
        Fill total/extra liters; the record unlocks once both are present.

        Values already on the record are replaced only when a new value is
        given.  The lock state is recomputed from the result.
        """

        def build(record: JourneyRecord, ledger: JourneyLedger) -> dict[str, Any]:
            updated = ledger.with_configuration(total_liters, extra_liters)
            reason = pending_config_reason(updated.total_liters, updated.extra_liters)
            return {
                "total_liters": updated.total_liters,
                "extra_liters": updated.extra_liters,
                "is_locked": reason is not None,
                "pending_config_reason": reason,
                "balance": updated.balance,
            }

        return self.mutate(journey_id, build, actor)

    def reconcile(self, journey_id: UUID, actor: str = "system") -> Decimal:
        """
        Recompute and store the balance; idempotent.

        Cancelled and deleted records are reconciled too.
        """

        def build(record: JourneyRecord, ledger: JourneyLedger) -> dict[str, Any]:
            if record.balance == ledger.balance:
                return {}
            logger.info(
                "balance_reconciled",
                extra={
                    "journey_id": str(record.id),
                    "stored_balance": record.balance,
                    "computed_balance": ledger.balance,
                },
            )
            return {"balance": ledger.balance}

        record = self.mutate(journey_id, build, actor, require_active=False)
        return record.balance

    def _ensure_active(self, record: JourneyRecord) -> None:
        if record.is_deleted:
            raise JourneyUnavailableError(str(record.id), "deleted")
        if record.is_cancelled:
            raise JourneyUnavailableError(str(record.id), "cancelled")

    def _compare_and_swap(
        self,
        record: JourneyRecord,
        values: dict[str, Any],
        actor: str,
        require_active: bool,
    ) -> bool:
        expected = record.version
        criteria = [JourneyRecord.id == record.id, JourneyRecord.version == expected]
        if require_active:
            criteria.append(JourneyRecord.is_cancelled.is_(False))
            criteria.append(JourneyRecord.is_deleted.is_(False))

        stmt = (
            update(JourneyRecord)
            .where(*criteria)
            .values(
                **values,
                version=expected + 1,
                updated_at=self.clock.now(),
                updated_by=actor,
            )
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        self.session.expire(record)
        return result.rowcount == 1
