from datetime import datetime, timedelta, timezone

import pytest

from sankalpa.core.errors import InsufficientBalance, NotFoundError, OperationInProgress, ValidationError


def test_check_in_awards_once_per_day(services, clock):
    services.accounts.provision("d1")

    first = services.activities.check_in("d1")
    clock.advance(hours=5)
    second = services.activities.check_in("d1")

    assert first.awarded is True
    assert first.xp_awarded == 10
    assert first.coins_awarded == 5
    assert second.awarded is False
    account = services.store.get("d1")
    assert account.xp == 10
    assert account.coins == 55
    assert account.last_check_in == "2024-01-01"
    assert account.check_in_count == 1


def test_check_in_uses_utc_date(services, clock):
    services.accounts.provision("d2")
    services.activities.check_in("d2")

    # 01:00 on Jan 2 in UTC+05:30 is still Jan 1 in UTC.
    ist = timezone(timedelta(hours=5, minutes=30))
    result = services.activities.check_in("d2", now=datetime(2024, 1, 2, 1, 0, tzinfo=ist))

    assert result.awarded is False
    assert result.date == "2024-01-01"


def test_check_in_next_day_awards_again(services, clock):
    services.accounts.provision("d3")
    services.activities.check_in("d3")
    clock.advance(days=1)

    result = services.activities.check_in("d3")

    assert result.awarded is True
    assert result.check_in_count == 2
    assert services.store.get("d3").coins == 60


def test_seventh_check_in_adds_weekly_bonus(services, clock):
    services.accounts.provision("d4")
    results = []
    for _ in range(7):
        results.append(services.activities.check_in("d4"))
        clock.advance(days=1)

    assert [r.weekly_bonus for r in results] == [0, 0, 0, 0, 0, 0, 25]
    assert results[-1].coins_awarded == 30
    account = services.store.get("d4")
    assert account.coins == 50 + 7 * 5 + 25
    assert account.xp == 70


def test_complete_activity_credits_catalog_values(services):
    services.accounts.provision("d5")

    breathing = services.activities.complete_activity("d5", "breathing")
    gratitude = services.activities.complete_activity("d5", "gratitude_entry")

    assert breathing.coins == 55
    assert gratitude.coins == 57
    assert gratitude.xp == 5
    reasons = [e.reason_code for e in services.store.ledger("d5")]
    assert reasons == ["activity:gratitude_entry", "activity:breathing"]


def test_unknown_activity(services):
    services.accounts.provision("d6")
    with pytest.raises(NotFoundError):
        services.activities.complete_activity("d6", "skydiving")


def test_activity_rejected_while_in_flight(services):
    services.accounts.provision("d7")
    guard = services.activities.guard

    with guard.hold("d7", "activity:breathing"):
        with pytest.raises(OperationInProgress):
            services.activities.complete_activity("d7", "breathing")
        # Different activity is not blocked.
        services.activities.complete_activity("d7", "squats")

    assert not guard.is_held("d7", "activity:breathing")
    services.activities.complete_activity("d7", "breathing")
    assert services.store.get("d7").coins == 60


def test_guard_released_after_failure(services):
    services.accounts.provision("d8")
    with pytest.raises(InsufficientBalance):
        services.activities.redeem("d8", "ocean-theme")
    assert not services.activities.guard.is_held("d8", "redeem:ocean-theme")


def test_redeem_in_app_reward_unlocks_item(services):
    services.accounts.provision("r1")
    services.ledger.credit("r1", 450, "test_grant")

    result = services.activities.redeem("r1", "ocean-theme")

    assert result.status == "unlocked"
    assert result.balance == 0
    account = services.store.get("r1")
    assert account.unlocked_items["themes"] == ["ocean-theme"]
    entry = services.store.ledger("r1", 1)[0]
    assert entry.reason_code == "reward_redemption"
    assert entry.metadata["reward_id"] == "ocean-theme"


def test_redeem_already_unlocked_is_rejected(services):
    services.accounts.provision("r2")
    services.ledger.credit("r2", 950, "test_grant")
    services.activities.redeem("r2", "ocean-theme")

    with pytest.raises(ValidationError):
        services.activities.redeem("r2", "ocean-theme")

    account = services.store.get("r2")
    assert account.coins == 500
    assert account.unlocked_items["themes"] == ["ocean-theme"]


def test_redeem_real_world_reward_is_pending(services):
    services.accounts.provision("r3")
    services.ledger.credit("r3", 950, "test_grant")

    result = services.activities.redeem("r3", "charity-donation")

    assert result.status == "pending"
    assert result.balance == 0
    entry = services.store.ledger("r3", 1)[0]
    assert entry.metadata["redemption_id"] == result.redemption_id
    assert entry.metadata["status"] == "pending"
    assert all(items == [] for items in services.store.get("r3").unlocked_items.values())


def test_redeem_insufficient_balance_changes_nothing(services):
    services.accounts.provision("r4")
    before = services.store.get("r4")

    with pytest.raises(InsufficientBalance):
        services.activities.redeem("r4", "focus-music")

    after = services.store.get("r4")
    assert after.coins == before.coins
    assert after.unlocked_items == before.unlocked_items


def test_unknown_reward(services):
    services.accounts.provision("r5")
    with pytest.raises(NotFoundError):
        services.activities.redeem("r5", "yacht")


def test_check_in_from_two_sessions_awards_once(interleaved_services, interleaving_store):
    interleaved_services.accounts.provision("d9")
    interleaving_store.interleave = lambda: interleaved_services.activities.check_in("d9")

    result = interleaved_services.activities.check_in("d9")

    # the other session committed first; the retry sees today's check-in
    assert result.awarded is False
    account = interleaving_store.get("d9")
    assert account.xp == 10
    assert account.coins == 55
    assert account.check_in_count == 1
    assert [e.reason_code for e in interleaving_store.ledger("d9")] == ["daily_check_in"]


def test_redeem_loses_to_debit_committed_mid_transaction(interleaved_services, interleaving_store):
    interleaved_services.accounts.provision("r6")
    interleaved_services.ledger.credit("r6", 450, "test_grant")
    interleaving_store.interleave = lambda: interleaved_services.ledger.debit("r6", 100, "other_device")

    with pytest.raises(InsufficientBalance):
        interleaved_services.activities.redeem("r6", "ocean-theme")

    account = interleaving_store.get("r6")
    assert account.coins == 400
    assert account.unlocked_items["themes"] == []
    assert [e.reason_code for e in interleaving_store.ledger("r6")] == ["other_device", "test_grant"]


def test_two_redemptions_cannot_overspend(interleaved_services, interleaving_store):
    interleaved_services.accounts.provision("r7")
    interleaved_services.ledger.credit("r7", 950, "test_grant")
    interleaving_store.interleave = lambda: interleaved_services.activities.redeem("r7", "focus-music")

    with pytest.raises(InsufficientBalance):
        interleaved_services.activities.redeem("r7", "ocean-theme")

    account = interleaving_store.get("r7")
    assert account.coins == 250
    assert account.unlocked_items["music"] == ["focus-music"]
    assert account.unlocked_items["themes"] == []
    assert not interleaved_services.activities.guard.is_held("r7", "redeem:ocean-theme")
