import logging

from starlette.middleware.base import BaseHTTPMiddleware

from sankalpa.core.logging import LOGGER_NAME
from sankalpa.core.metrics import http_requests_total, normalize_path

logger = logging.getLogger(LOGGER_NAME)


class MetricsMiddleware(BaseHTTPMiddleware):
    """Count requests by method, normalized path and status."""

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        labels = {
            "method": request.method.upper(),
            "path": normalize_path(request.url.path),
            "status": str(response.status_code),
        }
        try:
            http_requests_total.inc(labels=labels)
        except Exception:
            logger.debug("metrics.update_failed", exc_info=True)
        return response
