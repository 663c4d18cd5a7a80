"""
Referral Task Ledger

This module provides:
- Atomic units of work over the ledger store with full rollback
- Submission approval with worker payout, two-level upline commissions
  and operational bonuses
- Withdrawal approval with a balance re-check at approval time
- Append-only transaction log as the audit trail for every balance change
- Registration under an upline, project catalog and validated work intake
"""

from .models import (
    Role,
    ReviewStatus,
    TransactionKind,
    User,
    Project,
    Submission,
    Withdrawal,
    Transaction,
)
from .storage import InMemoryStorage
from .balance import BalanceAccessor
from .referrals import ReferralGraphResolver
from .service import SubmissionApprovalService, WithdrawalApprovalService

__all__ = [
    "Role",
    "ReviewStatus",
    "TransactionKind",
    "User",
    "Project",
    "Submission",
    "Withdrawal",
    "Transaction",
    "InMemoryStorage",
    "BalanceAccessor",
    "ReferralGraphResolver",
    "SubmissionApprovalService",
    "WithdrawalApprovalService",
]
