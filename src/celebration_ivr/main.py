"""
FastAPI application entry point.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

import celebration_ivr.models  # noqa: F401
from celebration_ivr.config import get_settings
from celebration_ivr.dialogue.orchestrator import CallOrchestrator
from celebration_ivr.dialogue.services import CallServices
from celebration_ivr.shared.database import get_database_manager
from celebration_ivr.shared.logging import get_logger, setup_logging
from celebration_ivr.telephony.bridge import CallRegistry
from celebration_ivr.telephony.factory import get_telephony_config, get_webhook_codec
from celebration_ivr.telephony.webhooks.router import router as telephony_webhooks_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()
    telephony_cfg = get_telephony_config()
    db = get_database_manager()

    logger.info(
        "Application starting",
        extra={"env": settings.app_env, "provider_type": telephony_cfg.provider_type.value},
    )

    if settings.auto_create_schema:
        await db.create_schema()
        logger.info("Database schema created")

    orchestrator = CallOrchestrator(
        CallServices(db, settings),
        settings,
        input_timeout_seconds=telephony_cfg.read_timeout_seconds,
    )
    app.state.codec = get_webhook_codec()
    app.state.call_registry = CallRegistry(orchestrator, telephony_cfg)

    yield

    logger.info("Shutting down application")
    await app.state.call_registry.shutdown()
    await db.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Celebration IVR",
        description="Telephone IVR for reporting and following up celebration events",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]
        return JSONResponse(
            status_code=422,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    app.include_router(telephony_webhooks_router)

    @app.get("/health")
    async def health_check(request: Request) -> dict[str, str | int]:
        registry = getattr(request.app.state, "call_registry", None)
        return {"status": "healthy", "active_calls": len(registry) if registry is not None else 0}

    return app


app = create_app()
