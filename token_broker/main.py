from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from token_broker.api.auth import router as auth_router
from token_broker.api.health import router as health_router
from token_broker.api.metrics_endpoint import router as metrics_router
from token_broker.api.tokens import router as tokens_router
from token_broker.core.config import SETTINGS, Settings
from token_broker.core.logging import setup_logging
from token_broker.middleware.metrics import MetricsMiddleware
from token_broker.middleware.request_context import (
    RequestContextMiddleware,
    install_request_context_filter,
)
from token_broker.repos.pending_auth_repo import InMemoryPendingAuthorizationLedger
from token_broker.repos.session_repo import InMemorySessionStore
from token_broker.services.authorization_flow import AuthorizationFlowController
from token_broker.services.token_access import TokenAccessController
from token_broker.services.upstream_client import (
    SpotifyTokenClient,
    UpstreamTokenClient,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    yield
    await app.state.upstream.aclose()
    logger.info("upstream token client closed")


def create_app(
    settings: Settings | None = None,
    upstream: UpstreamTokenClient | None = None,
) -> FastAPI:
    """Build the app and the process-wide stores it serves from.

    The ledger and the session store live exactly as long as the returned
    app; nothing is persisted across restarts.
    """
    settings = settings or SETTINGS

    setup_logging(settings.log_level, json_format=settings.log_json)
    install_request_context_filter()

    if not settings.client_id:
        logger.warning("CLIENT_ID is not set; the provider will reject every grant")

    upstream = upstream or SpotifyTokenClient(settings)
    ledger = InMemoryPendingAuthorizationLedger()
    sessions = InMemorySessionStore()

    app = FastAPI(
        title="spotify-token-broker",
        lifespan=lifespan,
        docs_url="/docs" if settings.is_dev else None,
        redoc_url="/redoc" if settings.is_dev else None,
    )
    app.state.settings = settings
    app.state.upstream = upstream
    app.state.ledger = ledger
    app.state.sessions = sessions
    app.state.flow_controller = AuthorizationFlowController(
        settings, ledger, sessions, upstream
    )
    app.state.token_controller = TokenAccessController(sessions, upstream)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    # Middleware execution order: last-added runs first (outermost layer).
    # RequestContext (outermost) → Metrics → CORS → route handler
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(metrics_router)
    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(tokens_router)

    logger.info(
        "token broker ready  env=%s log_level=%s port=%d docs=%s",
        settings.app_env,
        settings.log_level,
        settings.port,
        "on" if settings.is_dev else "off",
    )
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the module-level app on SETTINGS.port."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=SETTINGS.port, log_config=None)
