"""FastAPI application factory and configuration."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from whatsdesk.api.dependencies import get_services
from whatsdesk.api.routes import (
    admin_router,
    agents_router,
    channels_router,
    conversations_router,
    health_router,
    knowledge_router,
    webhooks_router,
)
from whatsdesk.core.config import settings
from whatsdesk.core.exceptions import AppException, ProtectionViolation
from whatsdesk.core.logging import configure_logging
from whatsdesk.storage.memory import InMemoryStorage

configure_logging()

logger = structlog.get_logger()

SERVICE_NAME = "WhatsDesk API"
VERSION = "0.1.0"

ROUTERS = (
    health_router,
    webhooks_router,
    admin_router,
    channels_router,
    knowledge_router,
    agents_router,
    conversations_router,
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Seed development data on startup; finish queued work on shutdown."""
    services = get_services()
    logger.info(
        "Starting service",
        service=SERVICE_NAME,
        environment=settings.app_env,
        storage=settings.storage_backend,
    )

    if settings.is_development and isinstance(services.storage, InMemoryStorage):
        await services.storage.seed_demo_tenant()
        logger.info("Seeded demo tenant for development")

    yield

    # Inbound events already accepted with a 200 must still be answered
    logger.info("Draining before shutdown", pending_events=services.pipeline.pending)
    await services.shutdown()


def _error_body(exc: AppException) -> dict:
    return {"error": exc.code, "message": exc.message, "details": exc.details}


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProtectionViolation)
    async def protection_violation_handler(request: Request, exc: ProtectionViolation) -> JSONResponse:
        logger.error(
            "Blocked operation on protected resource",
            path=request.url.path,
            actor=request.headers.get("x-actor"),
            role=request.headers.get("x-actor-role"),
            **exc.details,
        )
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(AppException)
    async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log("Request failed", code=exc.code, message=exc.message, details=exc.details, path=request.url.path)
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled exception", path=request.url.path, error=str(exc), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "INTERNAL_ERROR", "message": "An unexpected error occurred"},
        )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=SERVICE_NAME,
        description="WhatsApp chat automation with knowledge base, AI agents and human transfer",
        version=VERSION,
        docs_url="/docs" if settings.is_development else None,
        redoc_url=None,
        lifespan=lifespan,
    )

    if settings.is_development:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["*"],
            allow_headers=["*"],
        )

    register_exception_handlers(app)
    for router in ROUTERS:
        app.include_router(router)

    @app.get("/")
    async def root() -> dict[str, str]:
        return {"service": SERVICE_NAME, "version": VERSION, "status": "running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "whatsdesk.api.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.is_development,
    )
