"""Restart/forfeit cascade under simulated interleavings (see InterleavingStore in conftest)."""

import pytest

from sankalpa.core.errors import ConcurrentModification
from sankalpa.core.metrics import store_conflicts_total


def _reset_flags(account, reset_at):
    return (
        account.streak_start == reset_at,
        account.badge_tier == "clown",
        not account.has_active_contract,
    )


@pytest.fixture
def store(interleaving_store):
    return interleaving_store


@pytest.fixture
def wired(interleaved_services):
    return interleaved_services


def _with_contract(wired, clock, account_id):
    wired.accounts.provision(account_id)
    wired.ledger.credit(account_id, 50, "test_grant")
    wired.contracts.start(account_id)
    clock.advance(days=3)
    wired.tracker.reconcile_badge(account_id)


def test_restart_resets_all_fields_in_one_write(wired, store, clock):
    _with_contract(wired, clock, "a1")
    writes_before = store.writes

    result = wired.coordinator.restart("a1")

    assert store.writes - writes_before == 1
    assert result.contract_deactivated is True
    account = store.get("a1")
    assert _reset_flags(account, clock.now) == (True, True, True)
    assert account.check_in_count == 0


def test_observers_never_see_partial_cascade(wired, store, clock):
    _with_contract(wired, clock, "a2")
    store.observed.clear()
    published = []
    unsubscribe = store.subscribe("a2", published.append)

    wired.coordinator.restart("a2")
    unsubscribe()

    snapshots = store.observed + published
    assert len(snapshots) == 3
    for snapshot in snapshots:
        flags = _reset_flags(snapshot, clock.now)
        assert flags in ((True, True, True), (False, False, False))
    assert _reset_flags(published[0], clock.now) == (True, True, True)


def test_forfeit_cascade_is_atomic(wired, store, clock):
    _with_contract(wired, clock, "a3")
    store.observed.clear()

    wired.contracts.declare_forfeit("a3")

    before, after = store.observed
    assert _reset_flags(before, clock.now) == (False, False, False)
    assert _reset_flags(after, clock.now) == (True, True, True)


def test_restart_during_evaluate_wins_and_no_reward_is_paid(wired, store, clock):
    _with_contract(wired, clock, "a4")
    clock.advance(days=4)
    conflicts_before = store_conflicts_total.value()
    store.interleave = lambda: wired.coordinator.restart("a4")

    result = wired.contracts.evaluate("a4")

    assert result.outcome == "NONE"
    assert result.credited == 0
    account = store.get("a4")
    assert account.coins == 0
    assert _reset_flags(account, clock.now) == (True, True, True)
    assert store_conflicts_total.value() == conflicts_before + 1


def test_evaluate_during_restart_settles_first(wired, store, clock):
    _with_contract(wired, clock, "a5")
    clock.advance(days=4)
    store.interleave = lambda: wired.contracts.evaluate("a5")

    result = wired.coordinator.restart("a5")

    assert result.contract_deactivated is False
    account = store.get("a5")
    assert account.coins == 150
    assert account.active_contract is None
    assert account.streak_start == clock.now
    assert account.badge_tier == "clown"


def test_restart_without_contract(wired, store, clock):
    wired.accounts.provision("a6")
    wired.activities.check_in("a6")
    clock.advance(days=2)

    result = wired.coordinator.restart("a6")

    assert result.contract_deactivated is False
    account = store.get("a6")
    assert account.streak_start == clock.now
    assert account.check_in_count == 0


def test_conflict_surfaces_after_retries_exhausted(wired, store):
    store.max_retries = 0
    wired.accounts.provision("a7")
    store.interleave = lambda: wired.ledger.credit("a7", 5, "other_device")

    with pytest.raises(ConcurrentModification):
        wired.ledger.credit("a7", 10, "this_device")

    account = store.get("a7")
    assert account.coins == 55
    assert [e.reason_code for e in store.ledger("a7")] == ["other_device"]
