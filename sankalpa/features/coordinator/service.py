from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Literal, Optional

from sankalpa.core.clock import Clock, ensure_utc, utc_now
from sankalpa.core.errors import NoActiveContract
from sankalpa.core.logging import log_event
from sankalpa.core.metrics import cascade_resets_total
from sankalpa.features.badges.service import BadgeResolver, default_resolver
from sankalpa.store.base import AccountStore, AccountTransaction

ResetTrigger = Literal["restart", "forfeit"]


@dataclass
class ResetResult:
    account_id: str
    trigger: ResetTrigger
    streak_start: datetime
    badge_tier: str
    contract_deactivated: bool

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "trigger": self.trigger,
            "streak_start": self.streak_start.isoformat(),
            "badge_tier": self.badge_tier,
            "contract_deactivated": self.contract_deactivated,
        }


class ConsistencyCoordinator:
    """
    Owns the restart/forfeit cascade.

    Streak start, badge tier, check-in counter and contract activation are
    changed in one transactional write; no observer sees a subset.
    """

    def __init__(self, store: AccountStore, *, resolver: BadgeResolver = default_resolver, clock: Clock = utc_now):
        self.store = store
        self.resolver = resolver
        self.clock = clock

    def reset_in(self, txn: AccountTransaction, now: datetime) -> bool:
        """Apply the cascade to an open transaction. Returns True if a contract was deactivated."""
        account = txn.account
        account.streak_start = now
        account.badge_tier = self.resolver.initial.id
        account.check_in_count = 0
        if account.has_active_contract:
            account.active_contract.is_active = False
            return True
        return False

    def cascade_reset(
        self,
        account_id: str,
        *,
        trigger: ResetTrigger = "restart",
        now: Optional[datetime] = None,
        require_active_contract: bool = False,
    ) -> ResetResult:
        moment = ensure_utc(now or self.clock())

        def apply(txn: AccountTransaction) -> ResetResult:
            if require_active_contract and not txn.account.has_active_contract:
                raise NoActiveContract(f"Account {account_id} has no active contract to forfeit")
            deactivated = self.reset_in(txn, moment)
            return ResetResult(
                account_id=account_id,
                trigger=trigger,
                streak_start=moment,
                badge_tier=txn.account.badge_tier,
                contract_deactivated=deactivated,
            )

        result = self.store.transact(account_id, apply)
        cascade_resets_total.inc(labels={"trigger": trigger})
        log_event(
            "info",
            "cascade.reset",
            account_id=account_id,
            event_type="cascade.reset",
            extra={"trigger": trigger, "contract_deactivated": result.contract_deactivated},
        )
        return result

    def restart(self, account_id: str, now: Optional[datetime] = None) -> ResetResult:
        """User-initiated streak restart."""
        return self.cascade_reset(account_id, trigger="restart", now=now)
