from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from sankalpa.core.metrics import METRICS

router = APIRouter(tags=["metrics"])

PROMETHEUS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"


@router.get("/metrics", response_class=PlainTextResponse)
def export_metrics():
    """Prometheus scrape target for request and domain counters."""
    return PlainTextResponse(METRICS.export_prometheus(), media_type=PROMETHEUS_CONTENT_TYPE)
