"""
BalanceVerifier -- verification tooling for stored journey balances.

Recomputes every journey's balance from its slots and reports records
whose stored balance is off by more than BALANCE_TOLERANCE.  The engine
itself never uses a tolerance; this only exists to audit data written by
imports or older tooling.
"""

from decimal import Decimal

from sqlalchemy import select

from fuel_kernel.db.types import BALANCE_TOLERANCE
from fuel_kernel.domain.dtos import BalanceDiscrepancy
from fuel_kernel.domain.ledger import JourneyLedger
from fuel_kernel.logging_config import get_logger
from fuel_kernel.models.journey import JourneyRecord
from fuel_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.balance_verifier")


class BalanceVerifier(BaseSelector):
    def verify(
        self,
        tolerance: Decimal = BALANCE_TOLERANCE,
        include_cancelled: bool = False,
    ) -> list[BalanceDiscrepancy]:
        stmt = select(JourneyRecord).where(JourneyRecord.is_deleted.is_(False))
        if not include_cancelled:
            stmt = stmt.where(JourneyRecord.is_cancelled.is_(False))
        stmt = stmt.order_by(JourneyRecord.truck_no, JourneyRecord.going_do).execution_options(
            populate_existing=True
        )

        discrepancies = []
        checked = 0
        for record in self.session.execute(stmt).scalars():
            checked += 1
            expected = JourneyLedger.from_record(record).balance
            if abs(record.balance - expected) > tolerance:
                discrepancies.append(
                    BalanceDiscrepancy(
                        journey_id=record.id,
                        truck_no=record.truck_no,
                        going_do=record.going_do,
                        stored_balance=record.balance,
                        expected_balance=expected,
                    )
                )

        logger.info(
            "balance_verification_completed",
            extra={
                "checked_count": checked,
                "discrepancy_count": len(discrepancies),
                "tolerance": tolerance,
            },
        )
        return discrepancies
