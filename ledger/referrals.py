import logging
from typing import Optional

from .errors import EntityNotFoundError
from .models import User
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)

# Upper bound on any walk, whatever depth the caller asks for.
MAX_TRAVERSAL_DEPTH = 16


class ReferralGraphResolver:
    def __init__(self, storage: InMemoryStorage, max_depth: int = 2):
        self.storage = storage
        self.max_depth = max_depth

    def resolve_upline_chain(self, user_id: int, max_depth: Optional[int] = None) -> list[User]:
        """Return up to ``max_depth`` ancestors of a user, nearest first."""
        depth = self.max_depth if max_depth is None else max_depth
        depth = max(0, min(depth, MAX_TRAVERSAL_DEPTH))

        chain: list[User] = []
        with self.storage.transaction() as tx:
            current = tx.get("users", user_id)
            if current is None:
                raise EntityNotFoundError(f"User {user_id} not found")

            seen = {user_id}
            while len(chain) < depth and current["upline_id"] is not None:
                upline_id = current["upline_id"]
                if upline_id in seen:
                    logger.warning("Referral cycle detected at user %s; stopping walk", upline_id)
                    break
                upline = tx.get("users", upline_id)
                if upline is None:
                    break
                chain.append(User(**upline))
                seen.add(upline_id)
                current = upline

        return chain

    def list_downlines(self, user_id: int) -> list[User]:
        with self.storage.transaction() as tx:
            rows = tx.find("users", upline_id=user_id)
        return [User(**row) for row in rows]
