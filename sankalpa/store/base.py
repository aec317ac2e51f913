"""
AccountStore: the transactional document-store seam.

All state-mutating operations run through ``transact``, which re-reads the
authoritative account, applies a mutation to a working copy and commits the
account together with any ledger entries in one versioned write.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sankalpa.core.clock import Clock, utc_now
from sankalpa.core.errors import ConcurrentModification
from sankalpa.core.logging import log_event
from sankalpa.core.metrics import store_conflicts_total
from sankalpa.models.account import Account, LedgerEntry, LedgerEventType

logger = logging.getLogger(__name__)

T = TypeVar("T")
Listener = Callable[[Account], None]


class AccountTransaction:
    """Working copy of one account plus the ledger entries to append with it."""

    def __init__(self, account: Account, now: datetime):
        self.account = account
        self.now = now
        self.entries: List[LedgerEntry] = []
        self.read_version = account.version

    def record(
        self,
        event_type: LedgerEventType,
        reason_code: str,
        amount: int,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> LedgerEntry:
        """Record a coin movement that has already been applied to ``account.coins``."""
        entry = LedgerEntry(
            account_id=self.account.account_id,
            event_type=event_type,
            reason_code=reason_code,
            amount=amount,
            balance_after=self.account.coins,
            metadata=dict(metadata or {}),
            created_at=self.now,
        )
        self.entries.append(entry)
        return entry


class AccountStore(ABC):
    """Abstract account store with transparent retry on lost races."""

    def __init__(self, *, max_retries: int = 3, clock: Clock = utc_now):
        self.max_retries = max_retries
        self.clock = clock
        self._listeners: Dict[str, List[Listener]] = {}
        self._listeners_lock = threading.Lock()

    # Interface ---------------------------------------------------------
    @abstractmethod
    def create(self, account: Account) -> Account:
        """Persist a new account. Raises AccountExists if the id is taken."""

    @abstractmethod
    def get(self, account_id: str) -> Account:
        """Return a detached copy. Raises AccountNotFound."""

    @abstractmethod
    def ledger(self, account_id: str, limit: int = 20) -> List[LedgerEntry]:
        """Ledger entries for an account, newest first."""

    @abstractmethod
    def _run_once(self, account_id: str, fn: Callable[[AccountTransaction], T]) -> tuple[T, Optional[Account]]:
        """
        Execute one attempt: read, mutate, commit if the version is unchanged.

        Returns (result, committed snapshot or None when nothing changed).
        Raises ConcurrentModification when another writer won the race.
        """

    # Transactions ------------------------------------------------------
    def transact(self, account_id: str, fn: Callable[[AccountTransaction], T]) -> T:
        """
        Run ``fn`` as an atomic read-modify-write on the authoritative account.

        ``fn`` may be invoked more than once: every retry starts from freshly
        read state, so it must not capture balances from earlier attempts.
        Exceptions raised by ``fn`` abort the attempt with no state change.
        """
        attempt = 0
        while True:
            try:
                result, snapshot = self._run_once(account_id, fn)
            except ConcurrentModification:
                store_conflicts_total.inc()
                attempt += 1
                log_event(
                    "info",
                    "store.conflict",
                    account_id=account_id,
                    event_type="store.conflict",
                    extra={"attempt": attempt, "max_retries": self.max_retries},
                )
                if attempt > self.max_retries:
                    raise
                continue
            if snapshot is not None:
                self._publish(snapshot)
            return result

    @staticmethod
    def _changed(before: Account, after: Account, entries: List[LedgerEntry]) -> bool:
        return bool(entries) or before.to_dict() != after.to_dict()

    # Change feed -------------------------------------------------------
    def subscribe(self, account_id: str, listener: Listener) -> Callable[[], None]:
        """Register a listener for committed snapshots; returns an unsubscribe callable."""
        with self._listeners_lock:
            self._listeners.setdefault(account_id, []).append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                listeners = self._listeners.get(account_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    self._listeners.pop(account_id, None)

        return unsubscribe

    def _publish(self, snapshot: Account) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners.get(snapshot.account_id, []))
        for listener in listeners:
            try:
                listener(snapshot.copy())
            except Exception:
                logger.exception("Account listener failed for %s", snapshot.account_id)
