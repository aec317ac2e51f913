import logging
import re
import time
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware

from sankalpa.core.logging import LOGGER_NAME, account_id_ctx_var, latency_bucket_ms, request_id_ctx_var

logger = logging.getLogger(LOGGER_NAME)

_ACCOUNT_PATH = re.compile(r"^/v1/accounts/([^/]+)")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind request_id (and the addressed account, if any) for the duration of a request."""

    def __init__(self, app, header_name: str = "x-request-id"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request, call_next):
        rid = request.headers.get(self.header_name) or str(uuid4())
        request.state.request_id = rid
        match = _ACCOUNT_PATH.match(request.url.path)
        rid_token = request_id_ctx_var.set(rid)
        account_token = account_id_ctx_var.set(match.group(1) if match else None)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            account_id_ctx_var.reset(account_token)
            request_id_ctx_var.reset(rid_token)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers[self.header_name] = rid
        logger.info(
            "request.complete",
            extra={
                "request_id": rid,
                "account_id": match.group(1) if match else None,
                "path": request.url.path,
                "method": request.method,
                "status": response.status_code,
                "latency_bucket": latency_bucket_ms(elapsed_ms),
            },
        )
        return response
