"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from importlib.metadata import PackageNotFoundError, version as get_version

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.responses import Response

from faultline.config.settings import get_settings
from faultline.core.logging import get_logger, setup_logging
from faultline.core.middleware import install_fault_boundary
from faultline.core.request import request_validation_fault
from faultline.health.router import router as health_router


def get_app_version() -> str:
    """Get application version from package metadata."""
    try:
        return get_version("faultline")
    except PackageNotFoundError:
        return "0.0.0-dev"


# OpenAPI tags for documentation
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": "Health check endpoints for liveness probes",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown."""
    logger = get_logger(__name__)

    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info("Application starting up")

    yield

    logger.info("Application shutting down")


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> Response:
    """Answer request validation errors with a fault response."""
    return request_validation_fault(exc).to_response()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Disable OpenAPI docs in production (when debug=False)
    docs_url = "/docs" if settings.debug else None
    redoc_url = "/redoc" if settings.debug else None
    openapi_url = "/openapi.json" if settings.debug else None

    app = FastAPI(
        title=settings.app_name,
        version=get_app_version(),
        debug=settings.debug,
        lifespan=lifespan,
        docs_url=docs_url,
        redoc_url=redoc_url,
        openapi_url=openapi_url,
        openapi_tags=OPENAPI_TAGS,
    )

    # Add CORS middleware only if origins are configured
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "X-Correlation-ID"],
            expose_headers=["X-Correlation-ID"],
        )

    # Recovery sits inside request logging so the log line sees its 500s.
    install_fault_boundary(
        app,
        snapshot_limit=settings.body_snapshot_limit,
        log_body=settings.log_request_body,
        form_limit=settings.form_log_limit,
    )

    app.add_exception_handler(
        RequestValidationError,
        validation_error_handler,  # pyright: ignore[reportArgumentType]
    )

    app.include_router(health_router)

    return app


# Create the application instance
app = create_app()


@app.get("/", include_in_schema=False)
async def root() -> dict[str, str]:
    """Root endpoint with welcome message."""
    settings = get_settings()
    if settings.debug:
        return {"message": "Welcome to the API. Visit /docs for documentation."}
    return {"message": "Welcome to the API."}


def main() -> None:
    """Run the application using uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "faultline.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
