"""
Domain error taxonomy and the FastAPI handlers that render it.

Every error response has the shape
``{"error": {"code", "message", "request_id"[, "details"]}, "detail"}``
and echoes the request id in ``x-request-id``.
"""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from sankalpa.core.logging import LOGGER_NAME, get_request_id

logger = logging.getLogger(LOGGER_NAME)


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    @property
    def details(self) -> Optional[Dict[str, Any]]:
        return None


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, LookupError):
    code = "not_found"
    status_code = 404


class ConflictError(AppError):
    code = "conflict"
    status_code = 409


class AccountNotFound(NotFoundError):
    def __init__(self, account_id: str):
        super().__init__(f"Account {account_id} not found")
        self.account_id = account_id

    @property
    def details(self):
        return {"account_id": self.account_id}


class AccountExists(ConflictError):
    code = "account_exists"


class InsufficientBalance(ConflictError):
    """Debit precondition failed; the account is left untouched."""

    code = "insufficient_balance"

    def __init__(self, balance: int, amount: int):
        super().__init__(f"Insufficient balance: {balance} available, {amount} required")
        self.balance = balance
        self.amount = amount

    @property
    def details(self):
        return {"balance": self.balance, "required": self.amount}


class ContractAlreadyActive(ConflictError):
    code = "contract_already_active"


class NoActiveContract(ConflictError):
    code = "no_active_contract"


class ConcurrentModification(ConflictError):
    """A transaction lost a race; safe to retry because state is re-read."""

    code = "concurrent_modification"


class OperationInProgress(ConflictError):
    code = "operation_in_progress"


class StoreUnavailable(AppError):
    """Connectivity or backend failure. Surfaced to the caller, never retried."""

    code = "store_unavailable"
    status_code = 503


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or get_request_id() or str(uuid4())


def _error_response(
    rid: str,
    status_code: int,
    code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message, "request_id": rid}
    if details:
        error["details"] = details
    response = JSONResponse(status_code=status_code, content={"error": error, "detail": message})
    response.headers["x-request-id"] = rid
    return response


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _request_id(request)
    logger.log(
        logging.ERROR if exc.status_code >= 500 else logging.WARNING,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    return _error_response(rid, exc.status_code, exc.code, exc.message, exc.details)


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    return _error_response(rid, exc.status_code, code, str(exc.detail or "HTTP error"))


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _request_id(request)
    logger.error("unhandled.exception", exc_info=exc, extra={"request_id": rid, "error_code": "internal_error"})
    return _error_response(rid, 500, "internal_error", "Unexpected error")
