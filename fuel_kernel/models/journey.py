"""
Module: fuel_kernel.models.journey
Responsibility: ORM persistence for journey records -- one row per truck trip
    (going delivery order, optional return delivery order) carrying the fuel
    budget, the fifteen checkpoint slots and the running balance.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain enums only.

Invariants enforced:
    - (truck_no, going_do) is unique.
    - balance = (total_liters + extra_liters) - sum(|slot|); written only by
      LedgerService together with the slot it derives from.
    - is_locked <=> pending_config_reason is not null.
    - version increases on every write (ORM version_id_col, and manual
      increments in compare-and-swap slot postings).

Failure modes:
    - IntegrityError on duplicate (truck_no, going_do).
    - StaleDataError on an ORM flush against a stale version; services
      translate it to OptimisticLockError.
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fuel_kernel.db.base import TrackedBase
from fuel_kernel.db.types import ZERO_LITERS, Liters, enum_type
from fuel_kernel.domain.dtos import PendingConfigReason


def _slot() -> Mapped[Decimal]:
    return mapped_column(Liters(), default=ZERO_LITERS, nullable=False)


class JourneyRecord(TrackedBase):
    """
    Fuel record of one truck journey.

    Contract:
        Created when a going delivery order is issued.  Slots change only
        through LedgerService postings.  Records are cancelled or soft
        deleted, never physically removed.
    """

    __tablename__ = "journey_records"

    __table_args__ = (
        UniqueConstraint("truck_no", "going_do", name="uq_journey_truck_going_do"),
        Index("idx_journey_truck_active", "truck_no", "is_cancelled", "is_deleted"),
        Index("idx_journey_locked", "is_locked"),
    )

    truck_no: Mapped[str] = mapped_column(String(30), nullable=False)
    going_do: Mapped[str] = mapped_column(String(50), nullable=False)
    return_do: Mapped[str | None] = mapped_column(String(50), nullable=True)

    trip_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Month tag, e.g. "November 2025"
    month: Mapped[str] = mapped_column(String(20), nullable=False)

    start: Mapped[str | None] = mapped_column(String(100), nullable=True)
    origin: Mapped[str | None] = mapped_column(String(100), nullable=True)
    destination: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Budget; null while the record is locked for missing configuration
    total_liters: Mapped[Decimal | None] = mapped_column(Liters(), nullable=True)
    extra_liters: Mapped[Decimal | None] = mapped_column(Liters(), nullable=True)

    # Yard slots
    mmsa_yard: Mapped[Decimal] = _slot()
    tanga_yard: Mapped[Decimal] = _slot()
    dar_yard: Mapped[Decimal] = _slot()

    # Going slots
    dar_going: Mapped[Decimal] = _slot()
    moro_going: Mapped[Decimal] = _slot()
    mbeya_going: Mapped[Decimal] = _slot()
    tdm_going: Mapped[Decimal] = _slot()
    zambia_going: Mapped[Decimal] = _slot()
    congo_fuel: Mapped[Decimal] = _slot()

    # Return slots
    zambia_return: Mapped[Decimal] = _slot()
    tunduma_return: Mapped[Decimal] = _slot()
    mbeya_return: Mapped[Decimal] = _slot()
    moro_return: Mapped[Decimal] = _slot()
    dar_return: Mapped[Decimal] = _slot()
    tanga_return: Mapped[Decimal] = _slot()

    balance: Mapped[Decimal] = mapped_column(Liters(), default=ZERO_LITERS, nullable=False)

    is_cancelled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_by: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    is_locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pending_config_reason: Mapped[PendingConfigReason | None] = mapped_column(
        enum_type(PendingConfigReason),
        nullable=True,
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<JourneyRecord {self.truck_no} {self.going_do} v{self.version}>"
