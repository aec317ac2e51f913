"""
Coin ledger: guarded balance mutations.

Every mutation is a read-check-write transaction against the store's
authoritative copy. The ``*_in`` helpers operate on an already open
transaction so composite operations (contracts, check-ins, redemptions)
stay a single atomic write.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sankalpa.core.config import settings
from sankalpa.core.errors import InsufficientBalance, ValidationError
from sankalpa.core.logging import log_event
from sankalpa.core.metrics import ledger_mutations_total
from sankalpa.models.account import LedgerEntry
from sankalpa.store.base import AccountStore, AccountTransaction

LEVEL_UP_REASON = "level_up_bonus"


@dataclass
class LedgerResult:
    account_id: str
    balance: int
    entries: List[LedgerEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "balance": self.balance,
            "entries": [entry.to_dict() for entry in self.entries],
        }


@dataclass
class ProgressResult:
    account_id: str
    coins: int
    xp: int
    level: int
    previous_level: int
    level_bonus: int = 0
    entries: List[LedgerEntry] = field(default_factory=list)

    @property
    def levels_gained(self) -> int:
        return max(0, self.level - self.previous_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "coins": self.coins,
            "xp": self.xp,
            "level": self.level,
            "previous_level": self.previous_level,
            "levels_gained": self.levels_gained,
            "level_bonus": self.level_bonus,
            "entries": [entry.to_dict() for entry in self.entries],
        }


def _require_positive(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError(f"Amount must be a positive integer, got {amount!r}")
    return amount


def _require_reason(reason: str) -> str:
    if not reason or not reason.strip():
        raise ValidationError("A reason code is required for ledger mutations")
    return reason.strip()


def observe_entries(entries: Iterable[LedgerEntry]) -> None:
    """Count committed ledger entries by direction."""
    for entry in entries:
        ledger_mutations_total.inc(labels={"kind": "credit" if entry.amount > 0 else "debit"})


class CoinLedger:
    """Non-negative integer coin balance with guarded credit/debit."""

    def __init__(
        self,
        store: AccountStore,
        *,
        level_up_bonus: Optional[int] = None,
        xp_per_level: Optional[int] = None,
    ):
        self.store = store
        self.level_up_bonus = settings.LEVEL_UP_BONUS if level_up_bonus is None else level_up_bonus
        self.xp_per_level = xp_per_level or settings.XP_PER_LEVEL

    # In-transaction helpers ---------------------------------------------
    def credit_in(
        self, txn: AccountTransaction, amount: int, reason: str, metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerEntry:
        amount = _require_positive(amount)
        txn.account.coins += amount
        return txn.record("EARN", _require_reason(reason), amount, metadata)

    def debit_in(
        self, txn: AccountTransaction, amount: int, reason: str, metadata: Optional[Dict[str, Any]] = None
    ) -> LedgerEntry:
        amount = _require_positive(amount)
        reason = _require_reason(reason)
        if txn.account.coins < amount:
            raise InsufficientBalance(txn.account.coins, amount)
        txn.account.coins -= amount
        return txn.record("SPEND", reason, -amount, metadata)

    def level_for_xp(self, xp: int) -> int:
        return xp // self.xp_per_level + 1

    def apply_progress_in(
        self,
        txn: AccountTransaction,
        *,
        reason: str,
        coin_delta: int = 0,
        xp_delta: int = 0,
        level: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProgressResult:
        """
        Apply coin/XP/level changes with the level-up bonus.

        The bonus uses the level read inside this transaction, never a value
        captured earlier by the caller, so racing level-ups credit it once.
        """
        account = txn.account
        previous_level = account.level
        new_xp = account.xp + xp_delta
        if new_xp < 0:
            raise ValidationError("XP cannot become negative")
        if level is not None:
            if isinstance(level, bool) or not isinstance(level, int) or level < 1:
                raise ValidationError(f"Level must be an integer >= 1, got {level!r}")
            new_level = level
        else:
            new_level = max(previous_level, self.level_for_xp(new_xp))

        entries: List[LedgerEntry] = []
        if coin_delta > 0:
            entries.append(self.credit_in(txn, coin_delta, reason, metadata))
        elif coin_delta < 0:
            entries.append(self.debit_in(txn, -coin_delta, reason, metadata))

        account.xp = new_xp
        account.level = new_level

        bonus = 0
        if new_level > previous_level and self.level_up_bonus > 0:
            bonus = self.level_up_bonus * (new_level - previous_level)
            entries.append(
                self.credit_in(txn, bonus, LEVEL_UP_REASON, {"from_level": previous_level, "to_level": new_level})
            )

        return ProgressResult(
            account_id=account.account_id,
            coins=account.coins,
            xp=account.xp,
            level=account.level,
            previous_level=previous_level,
            level_bonus=bonus,
            entries=entries,
        )

    # Public operations ----------------------------------------------------
    def credit(self, account_id: str, amount: int, reason: str, metadata: Optional[Dict[str, Any]] = None) -> LedgerResult:
        _require_positive(amount)

        def apply(txn: AccountTransaction) -> LedgerResult:
            entry = self.credit_in(txn, amount, reason, metadata)
            return LedgerResult(account_id, txn.account.coins, [entry])

        result = self.store.transact(account_id, apply)
        observe_entries(result.entries)
        log_event(
            "info",
            "ledger.credit",
            account_id=account_id,
            event_type="ledger.credit",
            extra={"amount": amount, "reason_code": reason, "balance": result.balance},
        )
        return result

    def debit(self, account_id: str, amount: int, reason: str, metadata: Optional[Dict[str, Any]] = None) -> LedgerResult:
        _require_positive(amount)

        def apply(txn: AccountTransaction) -> LedgerResult:
            entry = self.debit_in(txn, amount, reason, metadata)
            return LedgerResult(account_id, txn.account.coins, [entry])

        try:
            result = self.store.transact(account_id, apply)
        except InsufficientBalance as exc:
            log_event(
                "warning",
                "ledger.debit_rejected",
                account_id=account_id,
                event_type="ledger.debit",
                error_code=exc.code,
                extra={"amount": amount, "reason_code": reason, "balance": exc.balance},
            )
            raise
        observe_entries(result.entries)
        log_event(
            "info",
            "ledger.debit",
            account_id=account_id,
            event_type="ledger.debit",
            extra={"amount": amount, "reason_code": reason, "balance": result.balance},
        )
        return result

    def apply_update(
        self,
        account_id: str,
        *,
        reason: str = "profile_update",
        coin_delta: int = 0,
        xp_delta: int = 0,
        level: Optional[int] = None,
    ) -> ProgressResult:
        result = self.store.transact(
            account_id,
            lambda txn: self.apply_progress_in(
                txn, reason=reason, coin_delta=coin_delta, xp_delta=xp_delta, level=level
            ),
        )
        observe_entries(result.entries)
        if result.level_bonus:
            log_event(
                "info",
                "ledger.level_up",
                account_id=account_id,
                event_type="ledger.level_up",
                extra={"from_level": result.previous_level, "to_level": result.level, "bonus": result.level_bonus},
            )
        return result

    def balance(self, account_id: str) -> int:
        return self.store.get(account_id).coins

    def history(self, account_id: str, limit: int = 20) -> List[LedgerEntry]:
        if limit <= 0 or limit > 500:
            raise ValidationError("limit must be between 1 and 500")
        return self.store.ledger(account_id, limit)
