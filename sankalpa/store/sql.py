"""
SQLAlchemy-backed AccountStore.

Each transaction locks the account row (``SELECT ... FOR UPDATE`` where the
backend supports it) and commits with ``UPDATE ... WHERE version = :read``,
so a concurrent writer that slipped past the lock still loses cleanly.
"""
from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional, TypeVar

from sqlalchemy import insert, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from sankalpa.core.clock import Clock, ensure_utc, utc_now
from sankalpa.core.database import accounts, coin_ledger, create_all_tables
from sankalpa.core.errors import (
    AccountExists,
    AccountNotFound,
    ConcurrentModification,
    StoreUnavailable,
)
from sankalpa.models.account import UNLOCK_CATEGORIES, Account, Contract, LedgerEntry
from sankalpa.store.base import AccountStore, AccountTransaction

T = TypeVar("T")


def _row_to_account(row: Mapping[str, Any]) -> Account:
    unlocked = {category: [] for category in UNLOCK_CATEGORIES}
    for category, items in (row["unlocked_items"] or {}).items():
        unlocked[category] = list(items)
    return Account(
        account_id=row["account_id"],
        coins=int(row["coins"]),
        level=int(row["level"]),
        xp=int(row["xp"]),
        streak_start=ensure_utc(row["streak_start"]),
        badge_tier=row["badge_tier"],
        last_check_in=row["last_check_in"],
        check_in_count=int(row["check_in_count"]),
        unlocked_items=unlocked,
        active_contract=Contract.from_dict(row["active_contract"]),
        version=int(row["version"]),
        created_at=ensure_utc(row["created_at"]),
        updated_at=ensure_utc(row["updated_at"]),
    )


def _account_values(account: Account) -> dict:
    return {
        "coins": account.coins,
        "level": account.level,
        "xp": account.xp,
        "streak_start": account.streak_start,
        "badge_tier": account.badge_tier,
        "last_check_in": account.last_check_in,
        "check_in_count": account.check_in_count,
        "unlocked_items": {k: list(v) for k, v in account.unlocked_items.items()},
        "active_contract": account.active_contract.to_dict() if account.active_contract else None,
    }


class SqlAccountStore(AccountStore):
    """Durable store over the ``accounts`` and ``coin_ledger`` tables."""

    def __init__(self, engine: Engine, *, max_retries: int = 3, clock: Clock = utc_now, create_tables: bool = False):
        super().__init__(max_retries=max_retries, clock=clock)
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, autocommit=False, autoflush=False)
        self._lock_rows = engine.dialect.name != "sqlite"
        if create_tables:
            create_all_tables(engine)

    def _session(self) -> Session:
        return self._sessions()

    def create(self, account: Account) -> Account:
        created_at = account.created_at or self.clock()
        values = _account_values(account)
        values.update(
            account_id=account.account_id,
            version=0,
            created_at=created_at,
            updated_at=created_at,
        )
        try:
            with self._session() as session:
                session.execute(insert(accounts).values(**values))
                session.commit()
        except IntegrityError as exc:
            raise AccountExists(f"Account {account.account_id} already exists") from exc
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailable("Account store unavailable") from exc
        return self.get(account.account_id)

    def get(self, account_id: str) -> Account:
        try:
            with self._session() as session:
                row = session.execute(
                    select(accounts).where(accounts.c.account_id == account_id)
                ).mappings().first()
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailable("Account store unavailable") from exc
        if row is None:
            raise AccountNotFound(account_id)
        return _row_to_account(row)

    def ledger(self, account_id: str, limit: int = 20) -> List[LedgerEntry]:
        self.get(account_id)
        try:
            with self._session() as session:
                rows = session.execute(
                    select(coin_ledger)
                    .where(coin_ledger.c.account_id == account_id)
                    .order_by(coin_ledger.c.id.desc())
                    .limit(limit)
                ).mappings().all()
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailable("Account store unavailable") from exc
        return [
            LedgerEntry(
                entry_id=str(row["id"]),
                account_id=row["account_id"],
                event_type=row["event_type"],
                reason_code=row["reason_code"],
                amount=int(row["amount"]),
                balance_after=int(row["balance_after"]),
                metadata=dict(row["metadata"] or {}),
                created_at=ensure_utc(row["created_at"]),
            )
            for row in rows
        ]

    def _run_once(self, account_id: str, fn: Callable[[AccountTransaction], T]) -> tuple[T, Optional[Account]]:
        try:
            with self._session() as session:
                query = select(accounts).where(accounts.c.account_id == account_id)
                if self._lock_rows:
                    query = query.with_for_update()
                row = session.execute(query).mappings().first()
                if row is None:
                    raise AccountNotFound(account_id)

                before = _row_to_account(row)
                txn = AccountTransaction(before.copy(), self.clock())
                result = fn(txn)
                if not self._changed(before, txn.account, txn.entries):
                    session.rollback()
                    return result, None

                values = _account_values(txn.account)
                values.update(version=txn.read_version + 1, updated_at=txn.now)
                updated = session.execute(
                    update(accounts)
                    .where(accounts.c.account_id == account_id)
                    .where(accounts.c.version == txn.read_version)
                    .values(**values)
                )
                if updated.rowcount != 1:
                    session.rollback()
                    raise ConcurrentModification(
                        f"Account {account_id} changed during transaction (read v{txn.read_version})"
                    )
                for entry in txn.entries:
                    session.execute(
                        insert(coin_ledger).values(
                            account_id=entry.account_id,
                            event_type=entry.event_type,
                            reason_code=entry.reason_code,
                            amount=entry.amount,
                            balance_after=entry.balance_after,
                            metadata=entry.metadata,
                            created_at=entry.created_at,
                        )
                    )
                session.commit()
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailable("Account store unavailable") from exc

        # the state this write produced, not a re-read that may include later writers
        committed = txn.account.copy()
        committed.version = txn.read_version + 1
        committed.updated_at = txn.now
        return result, committed
