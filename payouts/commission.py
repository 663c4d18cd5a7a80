from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_EVEN
from enum import Enum
from typing import Mapping, Optional, Sequence


class PayoutKind(str, Enum):
    TASK_PAYOUT = "TASK_PAYOUT"
    UPLINE_COMMISSION_L1 = "UPLINE_COMMISSION_L1"
    UPLINE_COMMISSION_L2 = "UPLINE_COMMISSION_L2"
    OPERATIONAL_BONUS = "OPERATIONAL_BONUS"


@dataclass(frozen=True)
class OperationalBonus:
    referral_code: str
    amount: Decimal


DEFAULT_OPERATIONAL_BONUSES = (
    OperationalBonus(referral_code="OPS-PLATFORM", amount=Decimal("1000.00")),
    OperationalBonus(referral_code="OPS-REVIEWER", amount=Decimal("500.00")),
)


@dataclass(frozen=True)
class CommissionSchedule:
    l1_rate: Decimal = Decimal("0.10")
    l2_rate: Decimal = Decimal("0.01")
    operational_bonuses: tuple[OperationalBonus, ...] = DEFAULT_OPERATIONAL_BONUSES
    decimal_places: int = 2

    @property
    def quantum(self) -> Decimal:
        return Decimal(1).scaleb(-self.decimal_places)

    def round(self, amount: Decimal) -> Decimal:
        return amount.quantize(self.quantum, rounding=ROUND_HALF_EVEN)


DEFAULT_SCHEDULE = CommissionSchedule()


@dataclass(frozen=True)
class PayoutComputation:
    worker_amount: Decimal
    l1_commission_rate: Decimal
    l2_commission_rate: Decimal
    l1_commission: Decimal
    l2_commission: Decimal
    operational_bonuses: tuple[OperationalBonus, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PayoutLineItem:
    recipient_id: int
    amount: Decimal
    kind: PayoutKind
    description: str = ""


def compute_payouts(project_value: Decimal, schedule: CommissionSchedule = DEFAULT_SCHEDULE) -> PayoutComputation:
    """
    Amounts owed for one approved submission of a project worth ``project_value``.

    Every tier is rounded half-even to the schedule's minor unit. Operational
    bonuses are fixed amounts and do not depend on the project value.
    """
    if not isinstance(project_value, Decimal):
        raise TypeError(f"project_value must be a Decimal, got {type(project_value).__name__}")
    if project_value <= 0:
        raise ValueError(f"project_value must be positive, got {project_value}")

    return PayoutComputation(
        worker_amount=schedule.round(project_value),
        l1_commission_rate=schedule.l1_rate,
        l2_commission_rate=schedule.l2_rate,
        l1_commission=schedule.round(project_value * schedule.l1_rate),
        l2_commission=schedule.round(project_value * schedule.l2_rate),
        operational_bonuses=tuple(
            OperationalBonus(b.referral_code, schedule.round(b.amount))
            for b in schedule.operational_bonuses
        ),
    )


def plan_line_items(
    computation: PayoutComputation,
    worker_id: int,
    upline_ids: Sequence[int] = (),
    operator_accounts: Optional[Mapping[str, Optional[int]]] = None,
) -> tuple[PayoutLineItem, ...]:
    """
    Ordered payout cascade: worker, upline level 1, upline level 2, then the
    operational bonuses in roster order.

    ``operator_accounts`` maps roster referral codes to user ids; a code that is
    missing or maps to None is skipped. Zero amounts produce no line item.
    """
    operator_accounts = operator_accounts or {}
    items = [PayoutLineItem(worker_id, computation.worker_amount, PayoutKind.TASK_PAYOUT, "Task payout")]

    if len(upline_ids) >= 1:
        items.append(PayoutLineItem(
            upline_ids[0], computation.l1_commission, PayoutKind.UPLINE_COMMISSION_L1,
            f"Level 1 commission from user {worker_id}",
        ))
    if len(upline_ids) >= 2:
        items.append(PayoutLineItem(
            upline_ids[1], computation.l2_commission, PayoutKind.UPLINE_COMMISSION_L2,
            f"Level 2 commission from user {worker_id}",
        ))

    for bonus in computation.operational_bonuses:
        recipient_id = operator_accounts.get(bonus.referral_code)
        if recipient_id is None:
            continue
        items.append(PayoutLineItem(
            recipient_id, bonus.amount, PayoutKind.OPERATIONAL_BONUS,
            f"Operational bonus ({bonus.referral_code})",
        ))

    return tuple(item for item in items if item.amount > 0)


def total_amount(items: Sequence[PayoutLineItem]) -> Decimal:
    return sum((item.amount for item in items), Decimal("0"))
