"""
Ledger store.

Tables are plain dicts of rows keyed by integer id. Every read and write goes
through a ``UnitOfWork`` obtained from ``InMemoryStorage.transaction()``; units
are serialised by a single store lock, keep an undo journal and are rolled back
entirely when anything inside them raises.
"""

import itertools
import logging
import threading
import time
from contextlib import contextmanager
from decimal import Decimal
from typing import Callable, Iterator, Optional

from .errors import StorageError, TransactionConflictError, TransactionTimeoutError

logger = logging.getLogger(__name__)

TABLES = (
    "users",
    "projects",
    "project_fields",
    "submissions",
    "submission_values",
    "withdrawals",
    "transactions",
)

UNIQUE_INDEXES = {
    "users": ("email", "referral_code"),
}

APPEND_ONLY_TABLES = ("transactions",)


class UnitOfWork:
    def __init__(self, storage: "InMemoryStorage", deadline: float):
        self.storage = storage
        self.deadline = deadline
        self.writes = 0
        self._journal: list[tuple[str, str, int, Optional[dict]]] = []

    def get(self, table: str, key: int) -> Optional[dict]:
        self._check()
        row = self._table(table).get(key)
        return dict(row) if row is not None else None

    def find(self, table: str, **criteria) -> list[dict]:
        self._check()
        rows = [
            dict(row) for row in self._table(table).values()
            if all(row.get(name) == value for name, value in criteria.items())
        ]
        rows.sort(key=lambda r: r["id"])
        return rows

    def find_one(self, table: str, **criteria) -> Optional[dict]:
        rows = self.find(table, **criteria)
        return rows[0] if rows else None

    def insert(self, table: str, row: dict) -> dict:
        self._check()
        rows = self._table(table)
        self._check_unique(table, row)
        key = next(self.storage._sequences[table])
        stored = dict(row, id=key)
        rows[key] = stored
        self._journal.append(("insert", table, key, None))
        self.writes += 1
        return dict(stored)

    def update(self, table: str, key: int, **changes) -> dict:
        self._check()
        if table in APPEND_ONLY_TABLES:
            raise StorageError(f"Table {table} is append-only")
        rows = self._table(table)
        current = rows.get(key)
        if current is None:
            raise StorageError(f"Row {table}#{key} does not exist")
        self._check_unique(table, changes, exclude=key)
        self._journal.append(("update", table, key, dict(current)))
        current.update(changes)
        self.writes += 1
        return dict(current)

    def increment(self, table: str, key: int, column: str, delta: Decimal) -> Decimal:
        """Add ``delta`` to a decimal column in place and return the new value."""
        self._check()
        rows = self._table(table)
        current = rows.get(key)
        if current is None:
            raise StorageError(f"Row {table}#{key} does not exist")
        self._journal.append(("update", table, key, dict(current)))
        current[column] = current[column] + delta
        self.writes += 1
        return current[column]

    def rollback(self) -> None:
        for action, table, key, previous in reversed(self._journal):
            rows = self.storage._tables[table]
            if action == "insert":
                rows.pop(key, None)
            else:
                rows[key] = previous
        if self._journal:
            logger.warning("Rolled back unit of work with %d write(s)", len(self._journal))
        self._journal.clear()

    def commit(self) -> None:
        self._check()
        self._journal.clear()

    def _table(self, table: str) -> dict[int, dict]:
        try:
            return self.storage._tables[table]
        except KeyError:
            raise StorageError(f"Unknown table {table}") from None

    def _check(self) -> None:
        if self.storage.closed:
            raise StorageError("Ledger store is closed")
        if self.storage._clock() > self.deadline:
            raise TransactionTimeoutError("Unit of work exceeded its time limit")

    def _check_unique(self, table: str, row: dict, exclude: Optional[int] = None) -> None:
        for column in UNIQUE_INDEXES.get(table, ()):
            if row.get(column) is None:
                continue
            for key, existing in self._table(table).items():
                if key != exclude and existing.get(column) == row[column]:
                    raise TransactionConflictError(
                        f"Duplicate value for {table}.{column}: {row[column]!r}"
                    )


class InMemoryStorage:
    unit_class = UnitOfWork

    def __init__(self, default_timeout: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self.default_timeout = default_timeout
        self._clock = clock
        self._tables: dict[str, dict[int, dict]] = {name: {} for name in TABLES}
        self._sequences = {name: itertools.count(1) for name in TABLES}
        self._lock = threading.Lock()
        self._local = threading.local()
        self.closed = False

    @contextmanager
    def transaction(self, timeout: Optional[float] = None) -> Iterator[UnitOfWork]:
        """
        Open an atomic unit of work.

        A unit opened while the calling thread already holds one joins the outer
        unit; commit and rollback then belong to the outer unit.
        """
        if self.closed:
            raise StorageError("Ledger store is closed")

        outer = getattr(self._local, "unit", None)
        if outer is not None:
            yield outer
            return

        timeout = self.default_timeout if timeout is None else timeout
        if not self._lock.acquire(timeout=timeout):
            raise TransactionTimeoutError(f"Could not start a unit of work within {timeout}s")

        unit = self.unit_class(self, deadline=self._clock() + timeout)
        self._local.unit = unit
        try:
            try:
                yield unit
                unit.commit()
            except BaseException:
                unit.rollback()
                raise
        finally:
            self._local.unit = None
            self._lock.release()

    def close(self) -> None:
        self.closed = True
