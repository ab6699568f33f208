"""
P2P Swap — FastAPI application entry point.

Configures the app, middleware, error rendering, and registers all API routers.
"""

import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from p2pswap.api import listings, matches
from p2pswap.config import settings
from p2pswap.core.errors import AppError, field_issues
from p2pswap.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    from p2pswap.database import engine

    yield

    # Shutdown: close connections
    await engine.dispose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Peer-to-peer currency exchange: listings, matching and match lifecycle.",
    version="0.1.0",
    lifespan=lifespan,
)

# --- CORS Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error rendering ---


def _error_response(
    status_code: int,
    kind: str,
    message: str,
    errors: list[dict] | None = None,
    exc: Exception | None = None,
) -> JSONResponse:
    stack = None
    if exc is not None and settings.expose_stack_traces:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    body = ErrorResponse(error=kind, message=message, errors=errors, stack=stack)
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return _error_response(exc.status_code, exc.kind, exc.message, exc.errors, exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return _error_response(
        status.HTTP_400_BAD_REQUEST, "validation_error", "Validation failed", field_issues(exc),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR, "unexpected_error", "Internal server error", exc=exc,
    )


# --- Routers ---
app.include_router(listings.router, prefix="/api/v1/listings", tags=["Listings"])
app.include_router(matches.router, prefix="/api/v1/matches", tags=["Matches"])


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers and monitoring."""
    return {
        "status": "healthy",
        "service": settings.APP_NAME,
        "version": "0.1.0",
    }
