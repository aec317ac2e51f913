"""In-process AccountStore backed by versioned dictionaries."""
from __future__ import annotations

import threading
from itertools import count
from typing import Callable, Dict, List, Optional, TypeVar

from sankalpa.core.clock import Clock, utc_now
from sankalpa.core.errors import AccountExists, AccountNotFound, ConcurrentModification
from sankalpa.models.account import Account, LedgerEntry
from sankalpa.store.base import AccountStore, AccountTransaction

T = TypeVar("T")


class InMemoryAccountStore(AccountStore):
    """
    Thread-safe store used by default and in tests.

    The lock is held only for reads and commits, never while the mutation
    runs, so two transactions on one account can interleave and the loser
    is detected by its stale version.
    """

    def __init__(self, *, max_retries: int = 3, clock: Clock = utc_now):
        super().__init__(max_retries=max_retries, clock=clock)
        self._accounts: Dict[str, Account] = {}
        self._ledger: Dict[str, List[LedgerEntry]] = {}
        self._ids = count(1)
        self._lock = threading.RLock()
        self.writes = 0

    def create(self, account: Account) -> Account:
        with self._lock:
            if account.account_id in self._accounts:
                raise AccountExists(f"Account {account.account_id} already exists")
            stored = account.copy()
            stored.created_at = stored.created_at or self.clock()
            stored.updated_at = stored.created_at
            self._accounts[account.account_id] = stored
            self._ledger.setdefault(account.account_id, [])
            self.writes += 1
            return stored.copy()

    def get(self, account_id: str) -> Account:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                raise AccountNotFound(account_id)
            return account.copy()

    def ledger(self, account_id: str, limit: int = 20) -> List[LedgerEntry]:
        with self._lock:
            if account_id not in self._accounts:
                raise AccountNotFound(account_id)
            entries = self._ledger.get(account_id, [])
            return [entry for entry in reversed(entries)][:limit]

    def _run_once(self, account_id: str, fn: Callable[[AccountTransaction], T]) -> tuple[T, Optional[Account]]:
        before = self.get(account_id)
        txn = AccountTransaction(before.copy(), self.clock())
        result = fn(txn)
        if not self._changed(before, txn.account, txn.entries):
            return result, None
        return result, self._commit(txn)

    def _commit(self, txn: AccountTransaction) -> Account:
        account = txn.account
        with self._lock:
            current = self._accounts.get(account.account_id)
            if current is None:
                raise AccountNotFound(account.account_id)
            if current.version != txn.read_version:
                raise ConcurrentModification(
                    f"Account {account.account_id} changed during transaction "
                    f"(read v{txn.read_version}, found v{current.version})"
                )
            committed = account.copy()
            committed.version = txn.read_version + 1
            committed.updated_at = txn.now
            self._accounts[account.account_id] = committed
            for entry in txn.entries:
                entry.entry_id = str(next(self._ids))
                self._ledger.setdefault(account.account_id, []).append(entry)
            self.writes += 1
            return committed.copy()
