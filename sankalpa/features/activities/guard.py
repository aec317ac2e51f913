"""Call-site re-entrancy guard for operations that are not naturally idempotent."""
from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Set, Tuple

from sankalpa.core.errors import OperationInProgress

GuardKey = Tuple[str, str]


class InFlightGuard:
    """
    Rejects a second invocation for the same key while the first one is
    still running (e.g. a double-tapped "complete activity" button).
    """

    def __init__(self):
        self._in_flight: Set[GuardKey] = set()
        self._lock = threading.Lock()

    @contextmanager
    def hold(self, account_id: str, operation: str) -> Iterator[None]:
        key = (account_id, operation)
        with self._lock:
            if key in self._in_flight:
                raise OperationInProgress(f"{operation} is already in progress for account {account_id}")
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._in_flight.discard(key)

    def is_held(self, account_id: str, operation: str) -> bool:
        with self._lock:
            return (account_id, operation) in self._in_flight
