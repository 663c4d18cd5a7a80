import logging
from decimal import Decimal

from .errors import EntityNotFoundError, InsufficientFundsError, InvalidRequestError
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)


class BalanceAccessor:
    """Atomic increment/decrement of a user's balance."""

    def __init__(self, storage: InMemoryStorage):
        self.storage = storage

    def adjust_balance(self, user_id: int, delta: Decimal) -> Decimal:
        """
        Add ``delta`` (positive or negative) to the balance and return the new value.

        Called inside an open unit of work the adjustment joins that unit.
        """
        if not isinstance(delta, Decimal):
            raise InvalidRequestError(f"Balance delta must be a Decimal, got {type(delta).__name__}")

        with self.storage.transaction() as tx:
            user = tx.get("users", user_id)
            if user is None:
                raise EntityNotFoundError(f"User {user_id} not found")

            if delta < 0 and user["balance"] + delta < 0:
                raise InsufficientFundsError(
                    f"User {user_id} balance {user['balance']} cannot cover {-delta}"
                )

            new_balance = tx.increment("users", user_id, "balance", delta)

        logger.debug("Adjusted balance of user %s by %s to %s", user_id, delta, new_balance)
        return new_balance

    def get_balance(self, user_id: int) -> Decimal:
        with self.storage.transaction() as tx:
            user = tx.get("users", user_id)
        if user is None:
            raise EntityNotFoundError(f"User {user_id} not found")
        return user["balance"]
