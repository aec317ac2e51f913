"""
Weekly commitment contract: stake now, resolve after expiry.

States per account: NONE -> ACTIVE -> {RESOLVED_SUCCESS, RESOLVED_FAILURE} -> NONE.
Resolution is evaluated opportunistically whenever the account is observed
after the contract's end instant; there is no background timer.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sankalpa.core.clock import Clock, ensure_utc, utc_now
from sankalpa.core.config import settings
from sankalpa.core.errors import ContractAlreadyActive
from sankalpa.core.logging import log_event
from sankalpa.core.metrics import contracts_total
from sankalpa.features.coordinator.service import ConsistencyCoordinator, ResetResult
from sankalpa.features.ledger.service import CoinLedger, observe_entries
from sankalpa.features.streaks.service import elapsed_days
from sankalpa.models.account import Account, Contract, ContractState, LedgerEntry
from sankalpa.store.base import AccountStore, AccountTransaction

STAKE_REASON = "contract_stake"
REWARD_REASON = "contract_reward"


@dataclass
class EvaluationResult:
    account_id: str
    outcome: ContractState
    credited: int = 0
    streak_days: Optional[int] = None
    entry: Optional[LedgerEntry] = None

    @property
    def resolved(self) -> bool:
        return self.outcome in ("RESOLVED_SUCCESS", "RESOLVED_FAILURE")

    def to_dict(self) -> dict:
        return {
            "account_id": self.account_id,
            "outcome": self.outcome,
            "resolved": self.resolved,
            "credited": self.credited,
            "streak_days": self.streak_days,
        }


def contract_state(account: Account) -> ContractState:
    return "ACTIVE" if account.has_active_contract else "NONE"


class CommitmentContractService:
    def __init__(
        self,
        store: AccountStore,
        ledger: CoinLedger,
        coordinator: ConsistencyCoordinator,
        *,
        stake: Optional[int] = None,
        reward: Optional[int] = None,
        days: Optional[int] = None,
        clock: Clock = utc_now,
    ):
        self.store = store
        self.ledger = ledger
        self.coordinator = coordinator
        self.stake = settings.CONTRACT_STAKE if stake is None else stake
        self.reward = settings.CONTRACT_REWARD if reward is None else reward
        self.days = settings.CONTRACT_DAYS if days is None else days
        if min(self.stake, self.reward, self.days) <= 0:
            raise ValueError("Contract stake, reward and duration must be positive")
        self.clock = clock

    def start(self, account_id: str, now: Optional[datetime] = None) -> Contract:
        """Debit the stake and activate the contract in one write."""
        moment = ensure_utc(now or self.clock())

        def apply(txn: AccountTransaction) -> tuple[Contract, LedgerEntry]:
            if txn.account.has_active_contract:
                raise ContractAlreadyActive(f"Account {account_id} already has an active contract")
            contract = Contract.open(stake=self.stake, reward=self.reward, start=moment, days=self.days)
            entry = self.ledger.debit_in(txn, self.stake, STAKE_REASON, {"contract_end": contract.end.isoformat()})
            txn.account.active_contract = contract
            return contract, entry

        contract, entry = self.store.transact(account_id, apply)
        observe_entries([entry])
        contracts_total.inc(labels={"outcome": "started"})
        log_event(
            "info",
            "contract.started",
            account_id=account_id,
            event_type="contract.started",
            extra={"stake": contract.stake_amount, "end": contract.end.isoformat()},
        )
        return contract

    def evaluate(self, account_id: str, now: Optional[datetime] = None) -> EvaluationResult:
        """
        Settle an expired contract against the current streak length.

        Success credits the reward and clears the contract; failure only
        clears it (the stake was spent at start). Before expiry, or with no
        active contract, nothing is written.
        """
        moment = ensure_utc(now or self.clock())

        def apply(txn: AccountTransaction) -> EvaluationResult:
            account = txn.account
            contract = account.active_contract
            if contract is None or not contract.is_active:
                return EvaluationResult(account_id, "NONE")
            streak = elapsed_days(account.streak_start, moment)
            if not contract.is_expired(moment):
                return EvaluationResult(account_id, "ACTIVE", streak_days=streak)

            account.active_contract = None
            if streak >= self.days:
                entry = self.ledger.credit_in(
                    txn, contract.reward_amount, REWARD_REASON, {"contract_start": contract.start.isoformat()}
                )
                return EvaluationResult(account_id, "RESOLVED_SUCCESS", contract.reward_amount, streak, entry)
            return EvaluationResult(account_id, "RESOLVED_FAILURE", 0, streak)

        result = self.store.transact(account_id, apply)
        if result.resolved:
            if result.entry is not None:
                observe_entries([result.entry])
            contracts_total.inc(labels={"outcome": result.outcome.lower()})
            log_event(
                "info",
                "contract.resolved",
                account_id=account_id,
                event_type="contract.resolved",
                extra={"outcome": result.outcome, "credited": result.credited, "streak_days": result.streak_days},
            )
        return result

    def declare_forfeit(self, account_id: str, now: Optional[datetime] = None) -> ResetResult:
        """User declares the commitment lost: same cascade as a manual restart, no refund."""
        result = self.coordinator.cascade_reset(
            account_id,
            trigger="forfeit",
            now=now,
            require_active_contract=True,
        )
        contracts_total.inc(labels={"outcome": "forfeited"})
        return result

    def status(self, account_id: str, now: Optional[datetime] = None) -> dict:
        moment = ensure_utc(now or self.clock())
        account = self.store.get(account_id)
        contract = account.active_contract if account.has_active_contract else None
        remaining = None
        if contract is not None:
            remaining = max(0, int((contract.end - moment).total_seconds()))
        return {
            "account_id": account_id,
            "state": contract_state(account),
            "contract": contract.to_dict() if contract else None,
            "expired": contract.is_expired(moment) if contract else False,
            "seconds_remaining": remaining,
            "streak_days": elapsed_days(account.streak_start, moment),
            "can_start": contract is None and account.coins >= self.stake,
            "stake_amount": self.stake,
            "reward_amount": self.reward,
        }
