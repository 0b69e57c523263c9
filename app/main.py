from __future__ import annotations

import logging
import os

from fastapi import FastAPI
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from .api.alerts import router as alerts_router
from .api.auth import router as auth_router
from .api.currencies import router as currencies_router
from .api.errors import register_error_handlers
from .api.portfolio import router as portfolio_router
from .api.prices import router as prices_router
from .metrics import metrics_middleware, router as metrics_router
from .sessions import SessionManager

logger = logging.getLogger(__name__)


def _flag(env_var: str, default: bool = False) -> bool:
    """Return True when an env var is explicitly set to a truthy value."""
    value = os.getenv(env_var)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def create_app(sessions: SessionManager | None = None) -> FastAPI:
    """Build the FastAPI application.

    ``sessions`` defaults to one configured from SECRET_KEY.
    """
    application = FastAPI(title="Pricewatch")
    application.state.sessions = sessions or SessionManager.from_env()
    application.middleware("http")(metrics_middleware)
    application.add_middleware(ProxyHeadersMiddleware)
    register_error_handlers(application)

    # Create missing tables on startup (dev/compose friendly).
    @application.on_event("startup")
    def _ensure_db_schema() -> None:  # pragma: no cover - exercised in integration
        if not _flag("CREATE_SCHEMA_ON_STARTUP", default=True):
            return
        from .db import create_all

        try:
            create_all()
        except Exception:
            logger.exception("could not create database schema on startup")

    if _flag("ENABLE_METRICS_ENDPOINT"):
        # Only expose /metrics when the deployment explicitly enables it.
        application.include_router(metrics_router)

    application.include_router(auth_router)
    application.include_router(currencies_router)
    application.include_router(prices_router)
    application.include_router(alerts_router)
    application.include_router(portfolio_router)

    @application.get("/health")
    def _health() -> dict[str, str]:
        """Tiny health probe used by Docker and uptime checks."""
        return {"status": "ok"}

    return application


app = create_app()
