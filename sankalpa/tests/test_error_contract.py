"""Tests for normalized error responses."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from sankalpa.core.errors import (
    AppError,
    ConcurrentModification,
    OperationInProgress,
    StoreUnavailable,
    app_error_handler,
    unhandled_exception_handler,
)
from sankalpa.core.middleware.request_id import RequestIdMiddleware


def _make_app(exc: Exception):
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    @app.get("/boom")
    async def boom():
        raise exc

    return app


def test_store_unavailable_is_503():
    client = TestClient(_make_app(StoreUnavailable("Account store unavailable")))
    resp = client.get("/boom")
    assert resp.status_code == 503
    body = resp.json()
    assert body["error"]["code"] == "store_unavailable"
    assert body["detail"] == "Account store unavailable"
    assert body["error"]["request_id"] == resp.headers["x-request-id"]


def test_conflicts_are_409():
    for exc, code in (
        (ConcurrentModification("lost race"), "concurrent_modification"),
        (OperationInProgress("busy"), "operation_in_progress"),
    ):
        resp = TestClient(_make_app(exc)).get("/boom")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == code


def test_unhandled_exception_is_internal_error():
    client = TestClient(_make_app(KeyError("x")), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    assert resp.json()["error"]["code"] == "internal_error"


def test_validation_error_has_standard_shape(client):
    client.post("/v1/accounts", json={"account_id": "err1"})
    resp = client.get("/v1/accounts/err1/ledger", params={"limit": 0})
    assert resp.status_code == 422

    resp = client.post("/v1/accounts", json={"account_id": "   "})
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"]["code"] == "validation_error"
    assert body["error"]["request_id"] == resp.headers.get("x-request-id")
