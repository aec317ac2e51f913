from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional

from sankalpa.core.clock import Clock, ensure_utc, utc_now
from sankalpa.core.logging import log_event
from sankalpa.features.badges.service import BadgeResolver, default_resolver
from sankalpa.models.account import Account
from sankalpa.models.badge import BadgeTier
from sankalpa.store.base import AccountStore, AccountTransaction

ONE_DAY = timedelta(days=1)


def elapsed_days(streak_start: datetime, now: datetime) -> int:
    """Whole days since the streak started; a start in the future counts as 0."""
    delta = ensure_utc(now) - ensure_utc(streak_start)
    if delta <= timedelta(0):
        return 0
    return delta // ONE_DAY


class StreakTracker:
    """Derives streak length from the start instant and keeps the stored tier in sync."""

    def __init__(self, store: AccountStore, *, resolver: BadgeResolver = default_resolver, clock: Clock = utc_now):
        self.store = store
        self.resolver = resolver
        self.clock = clock

    def streak_days(self, account: Account, now: Optional[datetime] = None) -> int:
        return elapsed_days(account.streak_start, now or self.clock())

    def expected_tier(self, account: Account, now: Optional[datetime] = None) -> BadgeTier:
        return self.resolver.resolve(self.streak_days(account, now))

    def reconcile_badge(self, account_id: str, now: Optional[datetime] = None) -> BadgeTier:
        """
        Bring the stored badge tier in line with the elapsed streak.

        Writes only when the tier differs, so repeated calls with no time
        passing produce no further writes.
        """
        moment = now or self.clock()
        account = self.store.get(account_id)
        if account.badge_tier == self.expected_tier(account, moment).id:
            return self.resolver.by_id(account.badge_tier)

        def apply(txn: AccountTransaction) -> tuple[str, BadgeTier]:
            tier = self.expected_tier(txn.account, moment)
            previous = txn.account.badge_tier
            txn.account.badge_tier = tier.id
            return previous, tier

        previous, tier = self.store.transact(account_id, apply)
        if previous != tier.id:
            log_event(
                "info",
                "streak.badge_reconciled",
                account_id=account_id,
                event_type="streak.badge_reconciled",
                extra={"from": previous, "to": tier.id},
            )
        return tier

    def describe(self, account: Account, now: Optional[datetime] = None) -> dict:
        moment = now or self.clock()
        days = self.streak_days(account, moment)
        tier = self.resolver.resolve(days)
        next_tier = next((t for t in self.resolver.tiers if t.min_days > days), None)
        return {
            "streak_start": ensure_utc(account.streak_start).isoformat(),
            "streak_days": days,
            "badge": tier.to_dict(),
            "next_badge": next_tier.to_dict() if next_tier else None,
            "days_to_next_badge": (next_tier.min_days - days) if next_tier else None,
        }
