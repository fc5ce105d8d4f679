"""
Main FastAPI application.

Entry point for the Memory Recall API with proper initialization,
middleware, error handling, and logging configuration.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.endpoints import memory
from app.core.config import Settings, create_directories, settings
from app.core.errors import MemoryPipelineError
from app.core.identity import IdentityProvider, build_identity_provider
from app.models.memory import utcnow
from app.services.memory_service import MemoryService, build_memory_service


def configure_logging(config: Settings) -> None:
    """Configure root logging: stdout plus an optional log file."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file))

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


create_directories()
configure_logging(settings)

logger = logging.getLogger(__name__)


def error_response(status_code: int, message: str) -> JSONResponse:
    """Error body shared by every endpoint."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": message,
            "timestamp": utcnow().isoformat(),
        },
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Builds the memory service if none was injected, creates tables and
    runs the ingestion workers for the lifetime of the app.

    Args:
        app: FastAPI application instance
    """
    logger.info("Starting Memory Recall API")

    if app.state.memory_service is None:
        app.state.memory_service = build_memory_service(settings)

    service: MemoryService = app.state.memory_service
    try:
        service.start()
        logger.info(f"Memory Recall API {settings.api_version} started")
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutting down Memory Recall API")
    await service.stop()


def create_app(
    service: Optional[MemoryService] = None,
    identity: Optional[IdentityProvider] = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        service: Memory service (built from settings at startup when omitted)
        identity: Identity provider (built from settings when omitted)

    Returns:
        FastAPI: Configured application
    """
    app = FastAPI(
        title=settings.api_title,
        description=settings.api_description,
        version=settings.api_version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc"
    )
    app.state.memory_service = service
    app.state.identity_provider = identity or build_identity_provider(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With"],
    )

    @app.middleware("http")
    async def security_headers_middleware(request: Request, call_next):
        """Add security headers to all responses."""
        response = await call_next(request)

        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

        return response

    @app.middleware("http")
    async def request_size_limit_middleware(request: Request, call_next):
        """Reject request bodies above max_request_bytes."""
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > settings.max_request_bytes:
            return error_response(413, "Request too large")

        return await call_next(request)

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """
        Request logging middleware.

        Logs all incoming requests with timing information.
        """
        start_time = time.time()

        response = await call_next(request)

        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} - "
            f"Status: {response.status_code} - "
            f"Time: {process_time:.3f}s"
        )
        response.headers["X-Process-Time"] = str(process_time)

        return response

    @app.exception_handler(MemoryPipelineError)
    async def pipeline_exception_handler(request: Request, exc: MemoryPipelineError):
        """Render taxonomy errors with their status code."""
        if exc.status_code >= 500:
            logger.error(f"{exc.__class__.__name__}: {exc.message} - {request.url.path}")
        else:
            logger.warning(f"HTTP {exc.status_code}: {exc.message} - {request.url.path}")

        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Request body/parameter validation failures are 400s."""
        errors = exc.errors()
        message = "Invalid request"
        if errors:
            first = errors[0]
            message = str(first.get("msg", message)).removeprefix("Value error, ")
            if first.get("type") == "missing":
                field = ".".join(str(part) for part in first.get("loc", ())[1:])
                message = f"{field} is required" if field else message

        logger.warning(f"HTTP 400: {message} - {request.url.path}")
        return error_response(400, message)

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """
        HTTP exception handler.

        Provides consistent error response format.
        """
        logger.warning(f"HTTP {exc.status_code}: {exc.detail} - {request.url}")
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handles unexpected errors with proper logging."""
        logger.error(f"Unhandled exception: {exc} - {request.url}", exc_info=True)
        return error_response(500, "Internal server error")

    app.include_router(memory.router, prefix="/api/v1")
    app.include_router(memory.records_router, prefix="/api/v1")

    @app.get("/")
    async def root():
        """
        Root endpoint with API information.

        Returns:
            Dict: API information and status
        """
        return {
            "name": settings.api_title,
            "version": settings.api_version,
            "description": settings.api_description,
            "status": "running",
            "endpoints": {
                "docs": "/docs",
                "health": "/api/v1/memory/health",
                "ingest": "/api/v1/memory/ingest",
                "recall": "/api/v1/memory/recall",
                "memories": "/api/v1/memories",
            }
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Memory Recall API server")

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower()
    )
