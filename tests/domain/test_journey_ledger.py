"""
JourneyLedger -- balance derivation and immutable postings.

balance = (total + extra) - sum(|slot|), in milliliter-exact Decimal.
"""

from dataclasses import FrozenInstanceError
from decimal import Decimal

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from fuel_kernel.domain.checkpoints import SLOT_ORDER, Checkpoint
from fuel_kernel.domain.ledger import JourneyLedger, compute_balance

liters = st.decimals(
    min_value=Decimal("-5000"),
    max_value=Decimal("5000"),
    places=3,
    allow_nan=False,
    allow_infinity=False,
)
budgets = st.one_of(
    st.none(),
    st.decimals(
        min_value=Decimal("0"),
        max_value=Decimal("5000"),
        places=3,
        allow_nan=False,
        allow_infinity=False,
    ),
)
postings = st.lists(st.tuples(st.sampled_from(SLOT_ORDER), liters), max_size=20)


class TestBalance:

    def test_balance_formula(self):
        balance = compute_balance(
            Decimal("2400"),
            Decimal("100"),
            {Checkpoint.DAR_YARD: Decimal("550"), Checkpoint.MBEYA_GOING: Decimal("450")},
        )
        assert balance == Decimal("1500")

    def test_missing_budget_counts_as_zero(self):
        ledger = JourneyLedger.create(None, 100, {Checkpoint.DAR_YARD: 50})
        assert ledger.budget == Decimal("100")
        assert ledger.balance == Decimal("50")

        ledger = JourneyLedger.create(None, None, {Checkpoint.DAR_YARD: 50})
        assert ledger.balance == Decimal("-50")

    def test_negative_slot_counts_by_absolute_value(self):
        ledger = JourneyLedger.create(1000, 0, {Checkpoint.DAR_YARD: Decimal("-200")})
        assert ledger.consumption == Decimal("200")
        assert ledger.balance == Decimal("800")

    def test_milliliter_precision(self):
        ledger = JourneyLedger.create("1000.0005", 0, {Checkpoint.DAR_GOING: "0.0004"})
        assert ledger.total_liters == Decimal("1000.001")
        assert ledger.slot(Checkpoint.DAR_GOING) == Decimal("0.000")
        assert ledger.balance == Decimal("1000.001")


class TestPostings:

    def test_yard_drawdown(self):
        ledger = JourneyLedger.create(2400, 100, {Checkpoint.DAR_YARD: 550})
        updated = ledger.with_posting(Checkpoint.DAR_YARD, Decimal("-44"))
        assert updated.slot(Checkpoint.DAR_YARD) == Decimal("506")
        # Original snapshot is untouched
        assert ledger.slot(Checkpoint.DAR_YARD) == Decimal("550")

    def test_ledger_is_frozen(self):
        ledger = JourneyLedger.create(2400, 100)
        with pytest.raises(FrozenInstanceError):
            ledger.total_liters = Decimal("1")
        with pytest.raises(TypeError):
            ledger.slots[Checkpoint.DAR_YARD] = Decimal("1")

    def test_with_configuration_keeps_unspecified_values(self):
        ledger = JourneyLedger.create(2400, None, {Checkpoint.MBEYA_GOING: 450})
        updated = ledger.with_configuration(extra_liters=80)
        assert updated.total_liters == Decimal("2400")
        assert updated.extra_liters == Decimal("80")
        assert updated.balance == Decimal("2030")

    def test_slot_columns_cover_every_slot(self):
        columns = JourneyLedger.create(slots={Checkpoint.CONGO_FUEL: 10}).slot_columns()
        assert set(columns) == {cp.slot for cp in SLOT_ORDER}
        assert columns["congo_fuel"] == Decimal("10")
        assert columns["dar_yard"] == Decimal("0")


class TestLedgerProperties:

    @given(total=budgets, extra=budgets, entries=postings)
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_balance_always_matches_formula(self, total, extra, entries):
        ledger = JourneyLedger.create(total, extra)
        for checkpoint, quantity in entries:
            ledger = ledger.with_posting(checkpoint, quantity)

        expected = (total or 0) + (extra or 0) - sum(
            (abs(ledger.slot(cp)) for cp in SLOT_ORDER), Decimal(0)
        )
        assert ledger.balance == expected

    @given(total=budgets, extra=budgets, entries=postings, checkpoint=st.sampled_from(SLOT_ORDER), quantity=liters)
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_posting_then_reversal_restores_balance(self, total, extra, entries, checkpoint, quantity):
        ledger = JourneyLedger.create(total, extra)
        for cp, q in entries:
            ledger = ledger.with_posting(cp, q)

        restored = ledger.with_posting(checkpoint, quantity).with_posting(checkpoint, -quantity)
        assert restored.slot(checkpoint) == ledger.slot(checkpoint)
        assert restored.balance == ledger.balance
