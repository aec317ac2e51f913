"""
Account provisioning and the observation path.

Loading an account is the well-defined trigger for badge reconciliation and
for opportunistic settlement of an expired commitment contract.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import uuid4

from sankalpa.core.clock import Clock, ensure_utc, utc_now
from sankalpa.core.config import Settings, settings as default_settings
from sankalpa.core.errors import ValidationError
from sankalpa.core.logging import log_event
from sankalpa.features.activities.service import ActivityService
from sankalpa.features.badges.service import BadgeResolver, default_resolver
from sankalpa.features.contracts.service import CommitmentContractService, EvaluationResult, contract_state
from sankalpa.features.coordinator.service import ConsistencyCoordinator
from sankalpa.features.ledger.service import CoinLedger
from sankalpa.features.streaks.service import StreakTracker
from sankalpa.models.account import Account
from sankalpa.store.base import AccountStore


class AccountService:
    def __init__(
        self,
        store: AccountStore,
        tracker: StreakTracker,
        contracts: CommitmentContractService,
        *,
        starting_coins: int,
        resolver: BadgeResolver = default_resolver,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.tracker = tracker
        self.contracts = contracts
        self.starting_coins = starting_coins
        self.resolver = resolver
        self.clock = clock

    def provision(self, account_id: Optional[str] = None, now: Optional[datetime] = None) -> Account:
        if account_id is not None and not account_id.strip():
            raise ValidationError("account_id must not be blank")
        moment = ensure_utc(now or self.clock())
        account = Account(
            account_id=(account_id or str(uuid4())).strip(),
            streak_start=moment,
            coins=self.starting_coins,
            badge_tier=self.resolver.initial.id,
            created_at=moment,
        )
        created = self.store.create(account)
        log_event(
            "info",
            "account.provisioned",
            account_id=created.account_id,
            event_type="account.provisioned",
            extra={"coins": created.coins},
        )
        return created

    def load(self, account_id: str, now: Optional[datetime] = None) -> tuple[Account, Optional[EvaluationResult]]:
        """Fetch an account, settling an expired contract and reconciling its badge."""
        moment = ensure_utc(now or self.clock())
        account = self.store.get(account_id)
        evaluation = None
        if account.has_active_contract and account.active_contract.is_expired(moment):
            evaluation = self.contracts.evaluate(account_id, moment)
        self.tracker.reconcile_badge(account_id, moment)
        return self.store.get(account_id), evaluation

    def view(self, account: Account, now: Optional[datetime] = None) -> dict:
        moment = ensure_utc(now or self.clock())
        payload = account.to_dict()
        payload["streak"] = self.tracker.describe(account, moment)
        payload["contract_state"] = contract_state(account)
        return payload


@dataclass
class Services:
    """Explicitly wired components sharing one injected store."""

    store: AccountStore
    ledger: CoinLedger
    tracker: StreakTracker
    coordinator: ConsistencyCoordinator
    contracts: CommitmentContractService
    activities: ActivityService
    accounts: AccountService
    clock: Clock


def build_services(store: AccountStore, *, clock: Clock = utc_now, config: Optional[Settings] = None) -> Services:
    cfg = config or default_settings
    ledger = CoinLedger(store, level_up_bonus=cfg.LEVEL_UP_BONUS, xp_per_level=cfg.XP_PER_LEVEL)
    tracker = StreakTracker(store, clock=clock)
    coordinator = ConsistencyCoordinator(store, clock=clock)
    contracts = CommitmentContractService(
        store,
        ledger,
        coordinator,
        stake=cfg.CONTRACT_STAKE,
        reward=cfg.CONTRACT_REWARD,
        days=cfg.CONTRACT_DAYS,
        clock=clock,
    )
    activities = ActivityService(store, ledger, clock=clock)
    accounts = AccountService(
        store,
        tracker,
        contracts,
        starting_coins=cfg.STARTING_COINS,
        clock=clock,
    )
    return Services(
        store=store,
        ledger=ledger,
        tracker=tracker,
        coordinator=coordinator,
        contracts=contracts,
        activities=activities,
        accounts=accounts,
        clock=clock,
    )


def build_store(*, clock: Clock = utc_now, config: Optional[Settings] = None) -> AccountStore:
    cfg = config or default_settings
    if cfg.ACCOUNT_STORE == "sql":
        from sankalpa.core.database import init_engine
        from sankalpa.store.sql import SqlAccountStore

        engine = init_engine(cfg.TEST_DATABASE_URL or cfg.DATABASE_URL)
        return SqlAccountStore(engine, max_retries=cfg.STORE_MAX_RETRIES, clock=clock, create_tables=True)

    from sankalpa.store.memory import InMemoryAccountStore

    return InMemoryAccountStore(max_retries=cfg.STORE_MAX_RETRIES, clock=clock)
