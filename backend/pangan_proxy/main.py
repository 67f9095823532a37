"""Pangan Proxy FastAPI Application.

Main entry point for the proxy API server. Routes are served at the root
and, for older clients, under the ``/pajar`` prefix.
"""

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from pangan_proxy.api import router
from pangan_proxy.config import settings
from pangan_proxy.dependencies import build_container
from pangan_proxy.models import AppError, ErrorCode, ProxyError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)

_started_at = time.monotonic()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    container = build_container(settings)
    app.state.container = container
    logger.info(f"Proxy ready (cache backend: {container.cache_backend})")
    yield
    # Shutdown
    await container.close()


app = FastAPI(
    title="Pangan Proxy API",
    description="Cached proxy for weather, food-price, geolocation and AI upstreams",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Global exception handlers
@app.exception_handler(ProxyError)
async def proxy_exception_handler(request: Request, exc: ProxyError):
    """Render service errors with their own status code."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


@app.exception_handler(RequestValidationError)
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: Exception):
    """Handle Pydantic validation errors."""
    error = AppError(
        code=ErrorCode.VALIDATION_ERROR,
        message=str(exc),
        user_message="Invalid request format. Please check your input.",
    )
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": error.model_dump(mode="json")},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected errors."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    error = AppError(
        code=ErrorCode.API_ERROR,
        message=str(exc),
        user_message="Something went wrong. Please try again.",
    )
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": error.model_dump(mode="json")},
    )


# Include API routes
app.include_router(router)
app.include_router(router, prefix="/pajar")


@app.get("/health")
@app.get("/pajar/health")
async def health_check(request: Request):
    """Health check endpoint."""
    container = getattr(request.app.state, "container", None)
    return {
        "status": "ok",
        "uptime": round(time.monotonic() - _started_at, 3),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "cache_backend": container.cache_backend if container else None,
        "environment": settings.environment,
    }
