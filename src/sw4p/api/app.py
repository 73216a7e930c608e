"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sw4p import __version__
from sw4p.chain.factory import ChainSourceFactory
from sw4p.chain.observer import ChainObserver
from sw4p.config import Settings, get_settings
from sw4p.errors import ApiError
from sw4p.gateway.factory import create_gateway
from sw4p.intents.database import close_db, init_db
from sw4p.lifecycle.controller import IntentLifecycleController

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings

    # Startup
    await init_db()

    owned = app.state.controller is None
    if owned:
        gateway = create_gateway(settings)
        chain_sources = ChainSourceFactory(settings)
        observer = ChainObserver(
            chain_sources,
            interval=settings.monitor_interval,
            min_confirmations=settings.min_confirmations,
        )
        controller = IntentLifecycleController(gateway, observer, settings=settings)
        app.state.controller = controller
        logger.info(
            f"Lifecycle controller ready (gateway={gateway.name}, "
            f"auto_approve={settings.auto_approve}, detector={settings.detector_mode})"
        )
        await controller.recover()

    yield

    # Shutdown
    if owned:
        await controller.shutdown()
        await gateway.close()
        await chain_sources.close()
        app.state.controller = None
    await close_db()


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Render service errors as ``{"success": false, "error": {...}}``."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.to_dict()},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render request validation failures as VALIDATION_ERROR."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "details": {"errors": errors},
            },
        },
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log unexpected failures without leaking their detail."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"},
        },
    )


def create_app(
    settings: Optional[Settings] = None,
    controller: Optional[IntentLifecycleController] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings override (defaults to the cached settings)
        controller: Prebuilt lifecycle controller; when omitted the lifespan
            builds one from settings and recovers in-flight intents
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="sw4p API",
        description="Deposit intent approval and processing service",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.controller = controller

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Register routes
    from sw4p.api.routers import admin, webhook
    from sw4p.api.routes import deposits, exchange, health, rates

    app.include_router(health.router, tags=["Health"])
    app.include_router(deposits.router, prefix="/api/v1", tags=["Deposits"])
    app.include_router(exchange.router, prefix="/api/v1", tags=["Exchange"])
    app.include_router(rates.router, prefix="/api/v1/rates", tags=["Rates"])
    app.include_router(admin.router, tags=["Admin"])
    app.include_router(webhook.router, tags=["Webhooks"])

    return app
