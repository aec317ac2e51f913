# sankalpa/conftest.py
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from sankalpa.core.config import Settings
from sankalpa.core.database import build_engine
from sankalpa.core.metrics import METRICS
from sankalpa.features.accounts.service import build_services
from sankalpa.store.memory import InMemoryAccountStore
from sankalpa.store.sql import SqlAccountStore

EPOCH = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Injectable clock that only moves when a test advances it."""

    def __init__(self, start: datetime = EPOCH):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, days: float = 0, hours: float = 0, seconds: float = 0) -> datetime:
        self.now = self.now + timedelta(days=days, hours=hours, seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def test_settings():
    return Settings(_env_file=None, ACCOUNT_STORE="memory", ENV="test")


@pytest.fixture
def memory_store(clock):
    return InMemoryAccountStore(clock=clock)


@pytest.fixture
def sql_store(tmp_path, clock):
    """
    SQLite-backed store in a throwaway file.

    A file (not :memory:) so that separate sessions see each other's commits.
    """
    engine = build_engine(f"sqlite:///{tmp_path / 'sankalpa.db'}")
    store = SqlAccountStore(engine, clock=clock, create_tables=True)
    yield store
    engine.dispose()


class InterleavingStore(InMemoryAccountStore):
    """
    Runs ``interleave`` (once) right before the next commit, as another
    device would, and records what an observer sees around each commit.
    """

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.interleave = None
        self.observed = []

    def _commit(self, txn):
        hook, self.interleave = self.interleave, None
        if hook is not None:
            hook()
        self.observed.append(self.get(txn.account.account_id))
        committed = super()._commit(txn)
        self.observed.append(self.get(txn.account.account_id))
        return committed


@pytest.fixture
def interleaving_store(clock):
    return InterleavingStore(clock=clock)


@pytest.fixture
def interleaved_services(interleaving_store, clock, test_settings):
    return build_services(interleaving_store, clock=clock, config=test_settings)


@pytest.fixture
def services(memory_store, clock, test_settings):
    return build_services(memory_store, clock=clock, config=test_settings)


@pytest.fixture
def sql_services(sql_store, clock, test_settings):
    return build_services(sql_store, clock=clock, config=test_settings)


@pytest.fixture
def client(services, test_settings):
    from sankalpa.main import create_app

    app = create_app(services, config=test_settings)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture(autouse=True)
def reset_metrics():
    METRICS.reset()
    yield
