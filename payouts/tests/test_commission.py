"""
Unit Tests for the Commission Calculator

Tests cover:
1. Tier amounts and rounding
2. Line item ordering and optional uplines
3. Operational bonus resolution
"""

import pytest
from decimal import Decimal

from payouts import (
    CommissionSchedule,
    OperationalBonus,
    PayoutKind,
    compute_payouts,
    plan_line_items,
    total_amount,
)


NO_BONUSES = CommissionSchedule(operational_bonuses=())


class TestComputePayouts:
    """Tests for payout amounts."""

    def test_default_rates(self):
        """Worker gets the project value, L1 10%, L2 1%."""
        result = compute_payouts(Decimal("100000"), NO_BONUSES)

        assert result.worker_amount == Decimal("100000.00")
        assert result.l1_commission == Decimal("10000.00")
        assert result.l2_commission == Decimal("1000.00")
        assert result.l1_commission_rate == Decimal("0.10")
        assert result.l2_commission_rate == Decimal("0.01")

    def test_round_half_even_on_every_tier(self):
        """Amounts are rounded half-even to two places."""
        result = compute_payouts(Decimal("12.25"), NO_BONUSES)

        # 1.225 -> 1.22, 0.1225 -> 0.12
        assert result.l1_commission == Decimal("1.22")
        assert result.l2_commission == Decimal("0.12")

        result = compute_payouts(Decimal("12.35"), NO_BONUSES)
        # 1.235 -> 1.24, 0.1235 -> 0.12
        assert result.l1_commission == Decimal("1.24")
        assert result.l2_commission == Decimal("0.12")

    def test_custom_decimal_places(self):
        """Zero-decimal currencies round to whole units."""
        schedule = CommissionSchedule(operational_bonuses=(), decimal_places=0)
        result = compute_payouts(Decimal("1250"), schedule)

        assert result.l1_commission == Decimal("125")
        assert result.l2_commission == Decimal("12")

    def test_operational_bonuses_are_fixed(self):
        """Bonus amounts do not scale with the project value."""
        schedule = CommissionSchedule(operational_bonuses=(OperationalBonus("OPS", Decimal("750")),))

        small = compute_payouts(Decimal("10"), schedule)
        large = compute_payouts(Decimal("1000000"), schedule)

        assert small.operational_bonuses == large.operational_bonuses
        assert small.operational_bonuses[0].amount == Decimal("750.00")

    def test_rejects_float(self):
        """Binary floats are refused."""
        with pytest.raises(TypeError):
            compute_payouts(100.0, NO_BONUSES)

    @pytest.mark.parametrize("value", [Decimal("0"), Decimal("-5")])
    def test_rejects_non_positive(self, value):
        """Project value must be positive."""
        with pytest.raises(ValueError):
            compute_payouts(value, NO_BONUSES)


class TestPlanLineItems:
    """Tests for the ordered payout cascade."""

    def test_full_cascade_order(self):
        """Worker, L1, L2, then operators in roster order."""
        schedule = CommissionSchedule(operational_bonuses=(
            OperationalBonus("OPS-A", Decimal("100")),
            OperationalBonus("OPS-B", Decimal("50")),
        ))
        computation = compute_payouts(Decimal("1000"), schedule)

        items = plan_line_items(
            computation, worker_id=1, upline_ids=[2, 3],
            operator_accounts={"OPS-A": 10, "OPS-B": 11},
        )

        assert [(i.recipient_id, i.kind) for i in items] == [
            (1, PayoutKind.TASK_PAYOUT),
            (2, PayoutKind.UPLINE_COMMISSION_L1),
            (3, PayoutKind.UPLINE_COMMISSION_L2),
            (10, PayoutKind.OPERATIONAL_BONUS),
            (11, PayoutKind.OPERATIONAL_BONUS),
        ]
        assert total_amount(items) == Decimal("1000") + Decimal("100") + Decimal("10") + Decimal("150")

    def test_worker_without_upline(self):
        """No uplines means only the task payout."""
        items = plan_line_items(compute_payouts(Decimal("500"), NO_BONUSES), worker_id=7)

        assert len(items) == 1
        assert items[0].kind == PayoutKind.TASK_PAYOUT
        assert items[0].amount == Decimal("500.00")

    def test_single_upline_gets_only_level_one(self):
        """An upline without its own upline yields no L2 line."""
        items = plan_line_items(compute_payouts(Decimal("500"), NO_BONUSES), worker_id=7, upline_ids=[8])

        assert [i.kind for i in items] == [PayoutKind.TASK_PAYOUT, PayoutKind.UPLINE_COMMISSION_L1]
        assert items[1].amount == Decimal("50.00")

    def test_unresolved_operator_is_skipped(self):
        """Roster codes without an account produce no line item."""
        schedule = CommissionSchedule(operational_bonuses=(
            OperationalBonus("OPS-A", Decimal("100")),
            OperationalBonus("OPS-GONE", Decimal("50")),
        ))
        items = plan_line_items(
            compute_payouts(Decimal("1000"), schedule), worker_id=1,
            operator_accounts={"OPS-A": 10, "OPS-GONE": None},
        )

        bonuses = [i for i in items if i.kind == PayoutKind.OPERATIONAL_BONUS]
        assert [(b.recipient_id, b.amount) for b in bonuses] == [(10, Decimal("100.00"))]

    def test_zero_commission_is_dropped(self):
        """A commission that rounds to zero is not paid out."""
        items = plan_line_items(compute_payouts(Decimal("0.40"), NO_BONUSES), worker_id=1, upline_ids=[2, 3])

        # L1 = 0.04, L2 = 0.004 -> 0.00
        assert [i.kind for i in items] == [PayoutKind.TASK_PAYOUT, PayoutKind.UPLINE_COMMISSION_L1]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
