from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sankalpa.core.clock import Clock, utc_date_iso, utc_now
from sankalpa.core.errors import NotFoundError, ValidationError
from sankalpa.core.logging import log_event
from sankalpa.features.activities.catalog import (
    ACTIVITIES,
    CHECK_IN_COINS,
    CHECK_IN_XP,
    REWARDS,
    WEEKLY_CHECK_IN_BONUS,
    WEEKLY_CHECK_IN_STRIDE,
)
from sankalpa.features.activities.guard import InFlightGuard
from sankalpa.features.ledger.service import CoinLedger, ProgressResult, observe_entries
from sankalpa.models.account import LedgerEntry
from sankalpa.store.base import AccountStore, AccountTransaction


@dataclass
class CheckInResult:
    account_id: str
    date: str
    awarded: bool
    xp_awarded: int = 0
    coins_awarded: int = 0
    weekly_bonus: int = 0
    level_bonus: int = 0
    check_in_count: int = 0
    entries: List[LedgerEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "date": self.date,
            "awarded": self.awarded,
            "xp_awarded": self.xp_awarded,
            "coins_awarded": self.coins_awarded,
            "weekly_bonus": self.weekly_bonus,
            "level_bonus": self.level_bonus,
            "check_in_count": self.check_in_count,
        }


@dataclass
class RedemptionResult:
    account_id: str
    reward_id: str
    category: str
    cost: int
    balance: int
    redemption_id: str
    status: str
    entry: Optional[LedgerEntry] = None

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "reward_id": self.reward_id,
            "category": self.category,
            "cost": self.cost,
            "balance": self.balance,
            "redemption_id": self.redemption_id,
            "status": self.status,
        }


class ActivityService:
    """Daily check-ins, client-reported activity rewards and reward redemption."""

    def __init__(
        self,
        store: AccountStore,
        ledger: CoinLedger,
        *,
        guard: Optional[InFlightGuard] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.ledger = ledger
        self.guard = guard or InFlightGuard()
        self.clock = clock

    def check_in(self, account_id: str, now: Optional[datetime] = None) -> CheckInResult:
        """Award the daily check-in at most once per UTC calendar date."""
        today = utc_date_iso(now or self.clock())

        def apply(txn: AccountTransaction) -> CheckInResult:
            account = txn.account
            if account.last_check_in == today:
                return CheckInResult(account_id, today, awarded=False, check_in_count=account.check_in_count)

            count = account.check_in_count + 1
            progress = self.ledger.apply_progress_in(
                txn, reason="daily_check_in", coin_delta=CHECK_IN_COINS, xp_delta=CHECK_IN_XP
            )
            entries = list(progress.entries)
            weekly_bonus = 0
            if count % WEEKLY_CHECK_IN_STRIDE == 0:
                weekly_bonus = WEEKLY_CHECK_IN_BONUS
                entries.append(self.ledger.credit_in(txn, weekly_bonus, "weekly_check_in_bonus", {"check_in_count": count}))
            account.last_check_in = today
            account.check_in_count = count
            return CheckInResult(
                account_id,
                today,
                awarded=True,
                xp_awarded=CHECK_IN_XP,
                coins_awarded=CHECK_IN_COINS + weekly_bonus,
                weekly_bonus=weekly_bonus,
                level_bonus=progress.level_bonus,
                check_in_count=count,
                entries=entries,
            )

        result = self.store.transact(account_id, apply)
        if result.awarded:
            observe_entries(result.entries)
        log_event(
            "info",
            "activity.check_in",
            account_id=account_id,
            event_type="activity.check_in",
            extra={"date": today, "awarded": result.awarded, "weekly_bonus": result.weekly_bonus},
        )
        return result

    def complete_activity(self, account_id: str, activity_id: str) -> ProgressResult:
        """Credit a completed activity; completion is reported by the client and trusted."""
        activity = ACTIVITIES.get(activity_id)
        if activity is None:
            raise NotFoundError(f"Unknown activity {activity_id}")

        with self.guard.hold(account_id, f"activity:{activity_id}"):
            result = self.store.transact(
                account_id,
                lambda txn: self.ledger.apply_progress_in(
                    txn,
                    reason=f"activity:{activity.id}",
                    coin_delta=activity.coins,
                    xp_delta=activity.xp,
                    metadata={"activity_type": activity.type},
                ),
            )
        observe_entries(result.entries)
        log_event(
            "info",
            "activity.completed",
            account_id=account_id,
            event_type="activity.completed",
            extra={"activity_id": activity.id, "coins": activity.coins, "xp": activity.xp},
        )
        return result

    def redeem(self, account_id: str, reward_id: str) -> RedemptionResult:
        reward = REWARDS.get(reward_id)
        if reward is None:
            raise NotFoundError(f"Unknown reward {reward_id}")

        redemption_id = str(uuid4())
        status = "unlocked" if reward.category == "in-app" else "pending"

        def apply(txn: AccountTransaction) -> RedemptionResult:
            account = txn.account
            if reward.unlock_category:
                unlocked = account.unlocked_items.setdefault(reward.unlock_category, [])
                if reward.id in unlocked:
                    raise ValidationError(f"Reward {reward.id} is already unlocked")
            entry = self.ledger.debit_in(
                txn,
                reward.cost,
                "reward_redemption",
                {
                    "reward_id": reward.id,
                    "category": reward.category,
                    "redemption_id": redemption_id,
                    "status": status,
                },
            )
            if reward.unlock_category:
                account.unlocked_items[reward.unlock_category].append(reward.id)
            return RedemptionResult(
                account_id=account_id,
                reward_id=reward.id,
                category=reward.category,
                cost=reward.cost,
                balance=account.coins,
                redemption_id=redemption_id,
                status=status,
                entry=entry,
            )

        with self.guard.hold(account_id, f"redeem:{reward_id}"):
            result = self.store.transact(account_id, apply)
        observe_entries([result.entry])
        log_event(
            "info",
            "reward.redeemed",
            account_id=account_id,
            event_type="reward.redeemed",
            extra={"reward_id": reward.id, "cost": reward.cost, "status": status},
        )
        return result
