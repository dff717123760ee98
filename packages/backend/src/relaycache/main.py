"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown of the Services container
(record store, cache, bus, fan-out gateway). Middleware, CORS, and
routers all registered here.
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from relaycache import __version__
from relaycache.api import api_router
from relaycache.config import Settings, settings
from relaycache.container import Services, build_services
from relaycache.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    Collaborators connect before the first request is served.
    """
    services: Services = app.state.services
    logger.info(
        "relaycache.starting",
        version=__version__,
        environment=services.settings.environment,
        port=services.settings.port,
        cache_backend=services.settings.cache_backend,
        bus_backend=services.settings.bus_backend,
    )

    await services.start()

    yield

    logger.info("relaycache.shutdown")
    await services.stop()


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are client errors: answer 400, not 422."""
    return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})


def create_app(
    app_settings: Optional[Settings] = None,
    services: Optional[Services] = None,
) -> FastAPI:
    """Build and return the FastAPI application."""
    app_settings = app_settings or settings
    services = services or build_services(app_settings)

    app = FastAPI(
        title="relaycache",
        description="Cache-aside product catalog with real-time change fan-out",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.services = services

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → Security → RequestId → handler

    from relaycache.middleware.request_id import RequestIdMiddleware
    from relaycache.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)

    # Mount API routes
    app.include_router(api_router)

    # Mount WebSocket route (real-time events)
    from relaycache.realtime.websocket import router as ws_router
    app.include_router(ws_router)

    return app


configure_logging(settings.log_level, settings.log_json)

# Default app instance (used by uvicorn: relaycache.main:app)
app = create_app()
