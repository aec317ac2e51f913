"""
SQLAlchemy Core schema and engine for the SQL account store.

Two tables: ``accounts`` (one versioned row per account) and the
append-only ``coin_ledger``. PostgreSQL gets a bounded QueuePool; SQLite
is supported for local runs and tests.
"""
import logging
import os
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.sql import func

from sankalpa.core.config import settings
from sankalpa.core.logging import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

metadata = MetaData()

POOL_OPTIONS = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 3600,
}

_engine: Optional[Engine] = None


accounts = Table(
    "accounts",
    metadata,
    Column("account_id", String(128), primary_key=True),
    Column("coins", Integer, nullable=False),
    Column("level", Integer, nullable=False, server_default="1"),
    Column("xp", Integer, nullable=False, server_default="0"),
    Column("streak_start", DateTime(timezone=True), nullable=False),
    Column("badge_tier", String(64), nullable=False),
    Column("last_check_in", String(10), nullable=True),
    Column("check_in_count", Integer, nullable=False, server_default="0"),
    Column("unlocked_items", JSON, nullable=False),
    Column("active_contract", JSON, nullable=True),
    # bumped on every committed write; UPDATEs are conditioned on it
    Column("version", Integer, nullable=False, server_default="0"),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=True),
    CheckConstraint("coins >= 0", name="ck_accounts_coins_non_negative"),
    CheckConstraint("level >= 1", name="ck_accounts_level_positive"),
    CheckConstraint("xp >= 0", name="ck_accounts_xp_non_negative"),
)

coin_ledger = Table(
    "coin_ledger",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", String(128), nullable=False),
    Column("event_type", String(16), nullable=False),
    Column("reason_code", String(64), nullable=False),
    Column("amount", Integer, nullable=False),
    Column("balance_after", Integer, nullable=False),
    Column("metadata", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Index("idx_coin_ledger_account_created", "account_id", "created_at"),
)


def get_database_url() -> Optional[str]:
    """TEST_DATABASE_URL wins over DATABASE_URL so test runs never touch real data."""
    return os.getenv("TEST_DATABASE_URL") or settings.TEST_DATABASE_URL or settings.DATABASE_URL


def build_engine(url: str) -> Engine:
    if not url.startswith("sqlite"):
        return create_engine(url, poolclass=QueuePool, **POOL_OPTIONS)

    options = {"connect_args": {"check_same_thread": False}}
    # in-memory SQLite lives and dies with its single connection
    if ":memory:" in url or url.rstrip("/") == "sqlite:":
        options["poolclass"] = StaticPool
    return create_engine(url, **options)


def init_engine(database_url: Optional[str] = None) -> Engine:
    global _engine

    url = database_url or get_database_url()
    if not url:
        raise ValueError("DATABASE_URL must be set when ACCOUNT_STORE=sql")

    _engine = build_engine(url)
    logger.info("database.engine_ready", extra={"event_type": "database", "dialect": _engine.dialect.name})
    return _engine


def get_engine() -> Engine:
    return _engine if _engine is not None else init_engine()


def create_all_tables(engine: Optional[Engine] = None) -> None:
    """Idempotent: existing tables are left alone."""
    metadata.create_all(bind=engine or get_engine())


def check_connection(engine: Optional[Engine] = None) -> bool:
    try:
        with (engine or get_engine()).connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("database.unreachable", extra={"error_code": "store_unavailable", "error_message": str(exc)})
        return False
    return True
