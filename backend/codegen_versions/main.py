from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from codegen_versions.config import settings
from codegen_versions.database import AsyncSessionLocal, init_db
from codegen_versions.dependencies import Services, build_services
from codegen_versions.errors import (
    ConfigurationError,
    OrchestrationError,
    ProjectNotFoundError,
    SecretsDecryptionError,
    SecretsNotFoundError,
    StalePointerError,
    ValidationError,
    VersionNotFoundError,
)
from codegen_versions.routes import api_router

load_dotenv()

logger = logging.getLogger(__name__)

_ERROR_STATUS: tuple[tuple[type[OrchestrationError], int, str], ...] = (
    (ProjectNotFoundError, status.HTTP_404_NOT_FOUND, "Project not found"),
    (VersionNotFoundError, status.HTTP_404_NOT_FOUND, "Version not found"),
    (SecretsNotFoundError, status.HTTP_404_NOT_FOUND, "Version secrets not found"),
    (StalePointerError, status.HTTP_409_CONFLICT, "Current version changed"),
    (
        SecretsDecryptionError,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "Version secrets could not be decrypted",
    ),
    (ValidationError, status.HTTP_400_BAD_REQUEST, "Invalid request"),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST, "Project misconfigured"),
)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


async def orchestration_error_handler(request: Request, exc: OrchestrationError) -> JSONResponse:
    for error_type, status_code, message in _ERROR_STATUS:
        if isinstance(exc, error_type):
            if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
                logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
            return JSONResponse(status_code=status_code, content={"error": message, "details": str(exc)})

    logger.error(f"{request.method} {request.url.path} failed: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": "Upstream operation failed", "details": str(exc)},
    )


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = services is None
        if owned:
            await init_db()
            app.state.services = build_services(settings, AsyncSessionLocal)
        else:
            app.state.services = services

        try:
            yield
        finally:
            if owned:
                await app.state.services.shutdown()

    app = FastAPI(
        title="Codegen Versions",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if services is not None:
        app.state.services = services
    app.add_exception_handler(OrchestrationError, orchestration_error_handler)
    app.include_router(api_router, prefix=settings.api_prefix)

    return app


configure_logging(settings.log_level)
app = create_app()
