"""
In-memory transactional store backing the wallet ledger.

Rows are plain dicts kept in per-table dictionaries, with secondary indexes
maintained on commit. Writers serialize on per-key locks (one per user,
shared budget or email address) acquired in a fixed order, and stage their
changes in a ``UnitOfWork`` that is applied in one step only when the whole
transaction body succeeds. Readers that need a consistent view across
tables take the commit lock through ``snapshot()``.
"""

import time
from collections import defaultdict
from contextlib import contextmanager
from copy import deepcopy
from threading import Lock, RLock
from typing import Iterator, Optional
from uuid import UUID

from .errors import StoreTimeoutError
from .log import get_logger

logger = get_logger(__name__)

def user_key(user_id: UUID) -> str:
    return f"user:{user_id}"


def budget_key(budget_id: UUID) -> str:
    return f"budget:{budget_id}"


def email_key(email: str) -> str:
    return f"email:{email}"


class UnitOfWork:
    """Changes staged by one transaction; nothing is visible until ``commit``."""

    def __init__(self, storage: "InMemoryStorage"):
        self._storage = storage
        self._staged: dict[tuple[str, UUID], dict] = {}
        self._new: set[tuple[str, UUID]] = set()

    def for_update(self, table: str, row_id: UUID) -> Optional[dict]:
        """Return a mutable staged copy of a row. The caller must hold its lock."""
        key = (table, row_id)
        if key not in self._staged:
            row = self._storage.get_row(table, row_id)
            if row is None:
                return None
            self._staged[key] = row
        return self._staged[key]

    def insert(self, table: str, row: dict) -> dict:
        key = (table, row["id"])
        self._staged[key] = row
        self._new.add(key)
        return row

    def commit(self) -> None:
        self._storage.apply(
            [(table, row, (table, row_id) in self._new) for (table, row_id), row in self._staged.items()]
        )
        self._staged.clear()
        self._new.clear()


class InMemoryStorage:
    def __init__(self):
        self.users: dict[UUID, dict] = {}
        self.incomes: dict[UUID, dict] = {}
        self.expenses: dict[UUID, dict] = {}
        self.budgets: dict[UUID, dict] = {}
        self.contributions: dict[UUID, dict] = {}

        self.email_index: dict[str, UUID] = {}
        self.incomes_by_user: dict[UUID, list[UUID]] = defaultdict(list)
        self.expenses_by_user: dict[UUID, list[UUID]] = defaultdict(list)
        self.contributions_by_user: dict[UUID, list[UUID]] = defaultdict(list)
        self.contributions_by_budget: dict[UUID, list[UUID]] = defaultdict(list)
        self.budgets_by_member: dict[UUID, list[UUID]] = defaultdict(list)
        self.idempotency_index: dict[tuple[UUID, str], UUID] = {}

        # key -> [lock, number of callers holding or waiting on it]
        self._locks: dict[str, list] = {}
        self._locks_guard = Lock()
        self._commit_lock = RLock()

    # -- locking ----------------------------------------------------------

    def _checkout(self, key: str) -> Lock:
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        """Drop the lock for ``key`` once nobody holds or waits on it."""
        with self._locks_guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def locked(self, *keys: str, timeout: float) -> Iterator[None]:
        """Hold the locks for ``keys``, acquired in sorted order to rule out deadlock."""
        deadline = time.monotonic() + timeout
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        held: list[Lock] = []
        try:
            for key, lock in zip(ordered, locks):
                if not lock.acquire(timeout=max(deadline - time.monotonic(), 0)):
                    logger.warning("store_lock_timeout", key=key, timeout=timeout)
                    raise StoreTimeoutError()
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            for key in ordered:
                self._checkin(key)

    @contextmanager
    def transaction(self, *keys: str, timeout: float) -> Iterator[UnitOfWork]:
        with self.locked(*keys, timeout=timeout):
            uow = UnitOfWork(self)
            yield uow
            uow.commit()

    @contextmanager
    def snapshot(self) -> Iterator["InMemoryStorage"]:
        with self._commit_lock:
            yield self

    # -- reads ------------------------------------------------------------

    def get_row(self, table: str, row_id: UUID) -> Optional[dict]:
        with self._commit_lock:
            row = getattr(self, table).get(row_id)
            return deepcopy(row) if row is not None else None

    def rows_for(self, table: str, index: str, key) -> list[dict]:
        with self._commit_lock:
            rows = getattr(self, table)
            return [deepcopy(rows[row_id]) for row_id in getattr(self, index).get(key, ())]

    def user_id_for_email(self, email: str) -> Optional[UUID]:
        with self._commit_lock:
            return self.email_index.get(email)

    def contribution_for_token(self, user_id: UUID, token: str) -> Optional[dict]:
        with self._commit_lock:
            row_id = self.idempotency_index.get((user_id, token))
            return deepcopy(self.contributions[row_id]) if row_id is not None else None

    # -- writes -----------------------------------------------------------

    def apply(self, changes: list[tuple[str, dict, bool]]) -> None:
        with self._commit_lock:
            for table, row, is_new in changes:
                getattr(self, table)[row["id"]] = deepcopy(row)
                self._index(table, row, is_new)

    def _index(self, table: str, row: dict, is_new: bool) -> None:
        row_id = row["id"]
        if table == "budgets":
            for member in [row["owner_id"], *row["participant_ids"]]:
                if row_id not in self.budgets_by_member[member]:
                    self.budgets_by_member[member].append(row_id)
            return
        if not is_new:
            return
        if table == "users":
            self.email_index[row["email"]] = row_id
        elif table == "incomes":
            self.incomes_by_user[row["user_id"]].append(row_id)
        elif table == "expenses":
            self.expenses_by_user[row["user_id"]].append(row_id)
        elif table == "contributions":
            self.contributions_by_user[row["user_id"]].append(row_id)
            self.contributions_by_budget[row["budget_id"]].append(row_id)
            self.idempotency_index[(row["user_id"], row["idempotency_token"])] = row_id
