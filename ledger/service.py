import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from payouts import (
    CommissionSchedule,
    PayoutComputation,
    PayoutLineItem,
    compute_payouts,
    plan_line_items,
    total_amount,
)
from payouts.commission import DEFAULT_SCHEDULE

from .balance import BalanceAccessor
from .errors import (
    AlreadyProcessedError,
    EntityNotFoundError,
    InsufficientFundsError,
    InvalidRequestError,
)
from .models import (
    ReviewStatus,
    Submission,
    SubmissionReviewResponse,
    SubmissionValue,
    Transaction,
    TransactionKind,
    Withdrawal,
    WithdrawalReviewResponse,
)
from .referrals import ReferralGraphResolver
from .storage import InMemoryStorage, UnitOfWork

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def submission_from_row(tx: UnitOfWork, row: dict) -> Submission:
    values = [SubmissionValue(**v) for v in tx.find("submission_values", submission_id=row["id"])]
    return Submission(**row, values=values)


def record_transaction(
    tx: UnitOfWork,
    kind: TransactionKind,
    amount: Decimal,
    user_id: int,
    balance_after: Decimal,
    description: str,
    submission_id: Optional[int] = None,
    withdrawal_id: Optional[int] = None,
) -> Transaction:
    row = tx.insert("transactions", {
        "kind": kind,
        "amount": amount,
        "user_id": user_id,
        "balance_after": balance_after,
        "submission_id": submission_id,
        "withdrawal_id": withdrawal_id,
        "description": description,
        "created_at": utcnow(),
    })
    return Transaction(**row)


class SubmissionApprovalService:
    """
    Reviews worker submissions.

    Approval runs as one unit of work: the PENDING check, every balance credit,
    every ledger entry and the status change commit together or not at all.
    """

    def __init__(
        self,
        storage: InMemoryStorage,
        schedule: CommissionSchedule = DEFAULT_SCHEDULE,
        upline_depth: int = 2,
        timeout: Optional[float] = None,
    ):
        self.storage = storage
        self.schedule = schedule
        self.timeout = timeout
        self.balances = BalanceAccessor(storage)
        self.referrals = ReferralGraphResolver(storage, max_depth=upline_depth)

    def approve_submission(self, submission_id: int, approver_id: Optional[int] = None) -> SubmissionReviewResponse:
        with self.storage.transaction(timeout=self.timeout) as tx:
            submission = self._load_pending(tx, submission_id)

            project = tx.get("projects", submission["project_id"])
            if project is None:
                raise EntityNotFoundError(f"Project {submission['project_id']} not found")

            computation = self._compute(project["value"])
            uplines = self.referrals.resolve_upline_chain(submission["user_id"])
            operators = self._resolve_operator_accounts(tx, computation)
            items = plan_line_items(
                computation,
                worker_id=submission["user_id"],
                upline_ids=[u.id for u in uplines],
                operator_accounts=operators,
            )

            transactions = [self._apply(tx, item, submission_id) for item in items]

            tx.update(
                "submissions", submission_id,
                status=ReviewStatus.APPROVED,
                processed_at=utcnow(),
                processed_by=approver_id,
            )
            approved = submission_from_row(tx, tx.get("submissions", submission_id))

        distributed = total_amount(items)
        logger.info(
            f"Approved submission {submission_id}: "
            f"{len(transactions)} payouts, total {distributed}"
        )
        return SubmissionReviewResponse(
            submission=approved,
            transactions=transactions,
            total_distributed=distributed,
            message=f"Submission {submission_id} approved",
        )

    def reject_submission(
        self, submission_id: int, note: Optional[str] = None, approver_id: Optional[int] = None
    ) -> SubmissionReviewResponse:
        with self.storage.transaction(timeout=self.timeout) as tx:
            self._load_pending(tx, submission_id)
            tx.update(
                "submissions", submission_id,
                status=ReviewStatus.REJECTED,
                admin_note=note,
                processed_at=utcnow(),
                processed_by=approver_id,
            )
            rejected = submission_from_row(tx, tx.get("submissions", submission_id))

        logger.info(f"Rejected submission {submission_id}")
        return SubmissionReviewResponse(submission=rejected, message=f"Submission {submission_id} rejected")

    def get_submission(self, submission_id: int) -> Submission:
        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.get("submissions", submission_id)
            if row is None:
                raise EntityNotFoundError(f"Submission {submission_id} not found")
            return submission_from_row(tx, row)

    def _load_pending(self, tx: UnitOfWork, submission_id: int) -> dict:
        submission = tx.get("submissions", submission_id)
        if submission is None:
            raise EntityNotFoundError(f"Submission {submission_id} not found")
        if submission["status"] != ReviewStatus.PENDING:
            raise AlreadyProcessedError(
                f"Submission {submission_id} was already processed ({submission['status'].value})"
            )
        return submission

    def _compute(self, project_value: Decimal) -> PayoutComputation:
        try:
            return compute_payouts(project_value, self.schedule)
        except (TypeError, ValueError, InvalidOperation) as e:
            raise InvalidRequestError(f"Cannot pay out project value {project_value!r}: {e}") from e

    def _resolve_operator_accounts(self, tx: UnitOfWork, computation: PayoutComputation) -> dict[str, int]:
        accounts = {}
        for bonus in computation.operational_bonuses:
            user = tx.find_one("users", referral_code=bonus.referral_code)
            if user is None:
                logger.warning(f"Operational bonus recipient {bonus.referral_code} not found, skipping")
                continue
            accounts[bonus.referral_code] = user["id"]
        return accounts

    def _apply(self, tx: UnitOfWork, item: PayoutLineItem, submission_id: int) -> Transaction:
        balance_after = self.balances.adjust_balance(item.recipient_id, item.amount)
        return record_transaction(
            tx,
            kind=TransactionKind(item.kind.value),
            amount=item.amount,
            user_id=item.recipient_id,
            balance_after=balance_after,
            description=item.description,
            submission_id=submission_id,
        )


class WithdrawalApprovalService:
    def __init__(self, storage: InMemoryStorage, decimal_places: int = 2, timeout: Optional[float] = None):
        self.storage = storage
        self.decimal_places = decimal_places
        self.timeout = timeout
        self.balances = BalanceAccessor(storage)

    def request_withdrawal(self, user_id: int, amount) -> Withdrawal:
        amount = self._validate_amount(amount)

        with self.storage.transaction(timeout=self.timeout) as tx:
            user = tx.get("users", user_id)
            if user is None:
                raise EntityNotFoundError(f"User {user_id} not found")
            if user["balance"] < amount:
                raise InsufficientFundsError(f"Balance {user['balance']} is below requested {amount}")

            row = tx.insert("withdrawals", {
                "user_id": user_id,
                "requested_amount": amount,
                "status": ReviewStatus.PENDING,
                "created_at": utcnow(),
                "processed_at": None,
                "processed_by": None,
                "admin_note": None,
            })

        logger.info(f"User {user_id} requested withdrawal {row['id']} of {amount}")
        return Withdrawal(**row)

    def approve_withdrawal(self, withdrawal_id: int, approver_id: Optional[int] = None) -> WithdrawalReviewResponse:
        with self.storage.transaction(timeout=self.timeout) as tx:
            withdrawal = self._load_pending(tx, withdrawal_id)
            amount = withdrawal["requested_amount"]

            # Balance as of now, not as of the request.
            user = tx.get("users", withdrawal["user_id"])
            if user is None:
                raise EntityNotFoundError(f"User {withdrawal['user_id']} not found")
            if user["balance"] < amount:
                raise InsufficientFundsError(
                    f"Withdrawal {withdrawal_id}: balance {user['balance']} is below requested {amount}"
                )

            balance_after = self.balances.adjust_balance(user["id"], -amount)
            transaction = record_transaction(
                tx,
                kind=TransactionKind.WITHDRAWAL_DEBIT,
                amount=-amount,
                user_id=user["id"],
                balance_after=balance_after,
                description=f"Withdrawal {withdrawal_id}",
                withdrawal_id=withdrawal_id,
            )
            updated = tx.update(
                "withdrawals", withdrawal_id,
                status=ReviewStatus.APPROVED,
                processed_at=utcnow(),
                processed_by=approver_id,
            )

        logger.info(f"Approved withdrawal {withdrawal_id} of {amount} for user {updated['user_id']}")
        return WithdrawalReviewResponse(
            withdrawal=Withdrawal(**updated),
            transaction=transaction,
            message=f"Withdrawal {withdrawal_id} approved",
        )

    def reject_withdrawal(
        self, withdrawal_id: int, note: Optional[str] = None, approver_id: Optional[int] = None
    ) -> WithdrawalReviewResponse:
        with self.storage.transaction(timeout=self.timeout) as tx:
            self._load_pending(tx, withdrawal_id)
            updated = tx.update(
                "withdrawals", withdrawal_id,
                status=ReviewStatus.REJECTED,
                admin_note=note,
                processed_at=utcnow(),
                processed_by=approver_id,
            )

        logger.info(f"Rejected withdrawal {withdrawal_id}")
        return WithdrawalReviewResponse(withdrawal=Withdrawal(**updated), message=f"Withdrawal {withdrawal_id} rejected")

    def get_withdrawal(self, withdrawal_id: int) -> Withdrawal:
        with self.storage.transaction(timeout=self.timeout) as tx:
            row = tx.get("withdrawals", withdrawal_id)
        if row is None:
            raise EntityNotFoundError(f"Withdrawal {withdrawal_id} not found")
        return Withdrawal(**row)

    def _load_pending(self, tx: UnitOfWork, withdrawal_id: int) -> dict:
        withdrawal = tx.get("withdrawals", withdrawal_id)
        if withdrawal is None:
            raise EntityNotFoundError(f"Withdrawal {withdrawal_id} not found")
        if withdrawal["status"] != ReviewStatus.PENDING:
            raise AlreadyProcessedError(
                f"Withdrawal {withdrawal_id} was already processed ({withdrawal['status'].value})"
            )
        return withdrawal

    def _validate_amount(self, amount) -> Decimal:
        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise InvalidRequestError(f"Invalid withdrawal amount: {amount!r}") from None
        if not amount.is_finite() or amount <= 0:
            raise InvalidRequestError("Withdrawal amount must be greater than zero")
        if amount.as_tuple().exponent < -self.decimal_places:
            raise InvalidRequestError(f"Withdrawal amount has more than {self.decimal_places} decimal places")
        return amount
