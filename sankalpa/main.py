import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

# Load env before settings are read
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from sankalpa import __version__
from sankalpa.api import accounts, activities, contracts, health, ledger, metrics, realtime
from sankalpa.core.config import Settings, settings, validate_config
from sankalpa.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from sankalpa.core.logging import configure_logging
from sankalpa.core.middleware.metrics import MetricsMiddleware
from sankalpa.core.middleware.request_id import RequestIdMiddleware
from sankalpa.features.accounts.service import Services, build_services, build_store
from sankalpa.realtime.hub import AccountHub


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("sankalpa")
    logger.info("Starting Sankalpa backend...")
    try:
        yield
    finally:
        logger.info("Stopping Sankalpa backend...")


def create_app(services: Optional[Services] = None, config: Optional[Settings] = None) -> FastAPI:
    """Build the API around an explicitly wired set of services."""
    cfg = config or settings
    configure_logging(cfg.ENV, cfg.LOG_LEVEL)
    validate_config(strict=cfg.CONFIG_STRICT, settings_obj=cfg)

    if services is None:
        store = build_store(config=cfg)
        services = build_services(store, config=cfg)

    app = FastAPI(title="Sankalpa", version=__version__, lifespan=lifespan)
    app.state.services = services
    app.state.hub = AccountHub(
        services.store,
        services.accounts.view,
        max_sockets_per_account=cfg.WS_MAX_SOCKETS_PER_ACCOUNT,
    )

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.include_router(accounts.router, tags=["accounts"])
    app.include_router(ledger.router, tags=["ledger"])
    app.include_router(contracts.router, tags=["contracts"])
    app.include_router(activities.router, tags=["activities"])
    app.include_router(realtime.router, tags=["realtime"])
    app.include_router(health.router)
    app.include_router(metrics.router)
    return app


app = create_app()
