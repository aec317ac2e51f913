from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Literal, Optional

from sankalpa.core.clock import ensure_utc

ContractState = Literal["NONE", "ACTIVE", "RESOLVED_SUCCESS", "RESOLVED_FAILURE"]
LedgerEventType = Literal["EARN", "SPEND"]

UNLOCK_CATEGORIES: tuple[str, ...] = ("themes", "badges", "music", "features")


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = ensure_utc(value)
    return value.isoformat() if value else None


def _parse(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value)))


@dataclass
class Contract:
    """
    Weekly commitment stake. The stake is already deducted from the balance
    whenever is_active is true.
    """

    stake_amount: int
    reward_amount: int
    start: datetime
    end: datetime
    is_active: bool = True

    @classmethod
    def open(cls, *, stake: int, reward: int, start: datetime, days: int) -> Contract:
        start = ensure_utc(start)
        return cls(
            stake_amount=stake,
            reward_amount=reward,
            start=start,
            end=start + timedelta(days=days),
            is_active=True,
        )

    def is_expired(self, now: datetime) -> bool:
        return ensure_utc(now) >= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stake_amount": self.stake_amount,
            "reward_amount": self.reward_amount,
            "start": _iso(self.start),
            "end": _iso(self.end),
            "is_active": self.is_active,
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional[Contract]:
        if not data:
            return None
        return cls(
            stake_amount=int(data["stake_amount"]),
            reward_amount=int(data["reward_amount"]),
            start=_parse(data["start"]),
            end=_parse(data["end"]),
            is_active=bool(data.get("is_active", False)),
        )


def _empty_unlocks() -> Dict[str, List[str]]:
    return {category: [] for category in UNLOCK_CATEGORIES}


@dataclass
class Account:
    """
    Progress state owned by one account. Mutated only through store
    transactions; instances handed out by a store are detached copies.
    """

    account_id: str
    streak_start: datetime
    coins: int = 0
    level: int = 1
    xp: int = 0
    badge_tier: str = "clown"
    last_check_in: Optional[str] = None  # ISO calendar date (UTC)
    check_in_count: int = 0
    unlocked_items: Dict[str, List[str]] = field(default_factory=_empty_unlocks)
    active_contract: Optional[Contract] = None
    version: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def has_active_contract(self) -> bool:
        return self.active_contract is not None and self.active_contract.is_active

    def copy(self) -> Account:
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "coins": self.coins,
            "level": self.level,
            "xp": self.xp,
            "streak_start": _iso(self.streak_start),
            "badge_tier": self.badge_tier,
            "last_check_in": self.last_check_in,
            "check_in_count": self.check_in_count,
            "unlocked_items": {k: list(v) for k, v in self.unlocked_items.items()},
            "active_contract": self.active_contract.to_dict() if self.active_contract else None,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass
class LedgerEntry:
    """Append-only record of one coin movement."""

    account_id: str
    event_type: LedgerEventType
    reason_code: str
    amount: int  # signed: positive for EARN, negative for SPEND
    balance_after: int
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    entry_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.entry_id,
            "event_type": self.event_type,
            "reason_code": self.reason_code,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
        }
