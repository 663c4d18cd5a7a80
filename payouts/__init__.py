"""
Payout Calculation Package

Pure commission arithmetic for approved submissions: the worker payout, the
two-level upline commission cascade and the fixed operational bonuses,
expressed as an ordered list of payout line items.
"""

from .commission import (
    PayoutKind,
    OperationalBonus,
    CommissionSchedule,
    PayoutComputation,
    PayoutLineItem,
    compute_payouts,
    plan_line_items,
    total_amount,
)

__all__ = [
    "PayoutKind",
    "OperationalBonus",
    "CommissionSchedule",
    "PayoutComputation",
    "PayoutLineItem",
    "compute_payouts",
    "plan_line_items",
    "total_amount",
]
