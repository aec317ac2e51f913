"""End-to-end flows through the HTTP API."""


def _provision(client, account_id, coins=None):
    resp = client.post("/v1/accounts", json={"account_id": account_id})
    assert resp.status_code == 201
    if coins:
        client.post(f"/v1/accounts/{account_id}/ledger/credit", json={"amount": coins, "reason": "test_grant"})
    return resp.json()


def test_provision_defaults(client):
    body = _provision(client, "api1")

    assert body["account_id"] == "api1"
    assert body["coins"] == 50
    assert body["level"] == 1
    assert body["badge_tier"] == "clown"
    assert body["contract_state"] == "NONE"
    assert body["streak"]["streak_days"] == 0


def test_provision_generates_id(client):
    resp = client.post("/v1/accounts", json={})
    assert resp.status_code == 201
    assert resp.json()["account_id"]


def test_duplicate_provision_conflicts(client):
    _provision(client, "api2")
    resp = client.post("/v1/accounts", json={"account_id": "api2"})
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "account_exists"


def test_get_account_reconciles_badge(client, clock):
    _provision(client, "api3")
    clock.advance(days=16)

    body = client.get("/v1/accounts/api3").json()

    assert body["badge_tier"] == "advanced"
    assert body["streak"]["streak_days"] == 16
    assert body["contract_evaluation"] is None


def test_unknown_account_is_404(client):
    resp = client.get("/v1/accounts/missing")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_debit_rejection_shape(client):
    _provision(client, "api4")
    resp = client.post("/v1/accounts/api4/ledger/debit", json={"amount": 60, "reason": "shop"})

    assert resp.status_code == 409
    body = resp.json()
    assert body["error"]["code"] == "insufficient_balance"
    assert body["error"]["request_id"] == resp.headers["x-request-id"]
    assert body["error"]["details"] == {"balance": 50, "required": 60}
    assert client.get("/v1/accounts/api4").json()["coins"] == 50


def test_non_positive_amount_is_validation_error(client):
    _provision(client, "api5")
    resp = client.post("/v1/accounts/api5/ledger/credit", json={"amount": 0, "reason": "grant"})
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_ledger_history(client):
    _provision(client, "api6", coins=25)
    client.post("/v1/accounts/api6/ledger/debit", json={"amount": 10, "reason": "shop"})

    body = client.get("/v1/accounts/api6/ledger", params={"limit": 1}).json()

    assert body["balance"] == 65
    assert len(body["entries"]) == 1
    assert body["entries"][0]["reason_code"] == "shop"
    assert body["entries"][0]["amount"] == -10


def test_contract_flow(client, clock):
    _provision(client, "api7", coins=50)

    started = client.post("/v1/accounts/api7/contract/start")
    assert started.status_code == 201
    assert started.json()["balance"] == 0

    again = client.post("/v1/accounts/api7/contract/start")
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "contract_already_active"

    clock.advance(days=7)
    evaluated = client.post("/v1/accounts/api7/contract/evaluate").json()
    assert evaluated["outcome"] == "RESOLVED_SUCCESS"
    assert evaluated["credited"] == 150

    status = client.get("/v1/accounts/api7/contract").json()
    assert status["state"] == "NONE"
    assert status["can_start"] is True


def test_load_settles_expired_contract(client, clock):
    _provision(client, "api8", coins=50)
    client.post("/v1/accounts/api8/contract/start")
    clock.advance(days=10)

    body = client.get("/v1/accounts/api8").json()

    assert body["contract_evaluation"]["outcome"] == "RESOLVED_SUCCESS"
    assert body["coins"] == 150
    assert body["contract_state"] == "NONE"


def test_forfeit_and_restart(client, clock):
    _provision(client, "api9", coins=50)
    client.post("/v1/accounts/api9/contract/start")
    clock.advance(days=2)

    forfeited = client.post("/v1/accounts/api9/contract/forfeit").json()
    assert forfeited["trigger"] == "forfeit"
    assert forfeited["contract_deactivated"] is True

    missing = client.post("/v1/accounts/api9/contract/forfeit")
    assert missing.status_code == 409
    assert missing.json()["error"]["code"] == "no_active_contract"

    restarted = client.post("/v1/accounts/api9/restart").json()
    assert restarted["trigger"] == "restart"
    assert restarted["contract_deactivated"] is False


def test_check_in_twice_same_day(client):
    _provision(client, "api10")

    first = client.post("/v1/accounts/api10/check-in").json()
    second = client.post("/v1/accounts/api10/check-in").json()

    assert first["awarded"] is True
    assert second["awarded"] is False
    account = client.get("/v1/accounts/api10").json()
    assert account["xp"] == 10
    assert account["coins"] == 55


def test_activity_and_redeem(client):
    _provision(client, "api11", coins=700)

    activity = client.post("/v1/accounts/api11/activities/mental_workout")
    assert activity.status_code == 200
    assert activity.json()["coins"] == 760

    redeemed = client.post("/v1/accounts/api11/rewards/focus-music/redeem")
    assert redeemed.status_code == 200
    assert redeemed.json()["status"] == "unlocked"

    account = client.get("/v1/accounts/api11").json()
    assert account["coins"] == 10
    assert account["unlocked_items"]["music"] == ["focus-music"]


def test_unknown_activity_is_404(client):
    _provision(client, "api12")
    resp = client.post("/v1/accounts/api12/activities/skydiving")
    assert resp.status_code == 404


def test_progress_update_applies_level_bonus(client):
    _provision(client, "api13")
    body = client.post("/v1/accounts/api13/progress", json={"level": 3, "coin_delta": 5}).json()

    assert body["previous_level"] == 1
    assert body["level"] == 3
    assert body["level_bonus"] == 100
    assert body["coins"] == 155


def test_badge_catalog(client):
    badges = client.get("/v1/badges").json()["badges"]
    assert [b["id"] for b in badges][:3] == ["clown", "noob", "novice"]
    assert badges[-1]["min_days"] == 120
