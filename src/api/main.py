"""FastAPI application for the LogiSync API.

Provides the main application instance with routers and exception
handlers configured. The import engine is built at startup and its
event emitter feeds the SSE progress stream.
"""

import logging
import os
import sys
import time as _time
from contextlib import asynccontextmanager
from importlib.metadata import version as _pkg_version

from fastapi import FastAPI, Request

# Configure logging to stdout for uvicorn to capture
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s:%(name)s:%(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
# Ensure our application loggers are captured
logging.getLogger("src").setLevel(logging.INFO)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import imports, progress
from src.db.connection import init_db
from src.errors import ConflictError, DomainError, NotFoundError
from src.services.engine_provider import get_engine, shutdown_engine

logger = logging.getLogger(__name__)

# Module-level state for the health endpoint
_startup_time: float = 0.0


def _parse_allowed_origins() -> list[str]:
    """Parse comma-separated CORS allowlist from ALLOWED_ORIGINS env var."""
    raw = os.environ.get("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return []
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Async lifespan: engine startup + shutdown cleanup."""
    global _startup_time

    # --- Startup ---
    _startup_time = _time.time()
    engine = get_engine()
    init_db()
    engine.tracker.emitter.add_observer(progress.sse_observer)
    logger.info("LogiSync API started")

    yield

    # --- Shutdown ---
    engine.tracker.emitter.remove_observer(progress.sse_observer)
    await shutdown_engine()


app = FastAPI(
    title="LogiSync API",
    description="Batch order import and tracking reconciliation",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS allowlist is env-driven. If unset, CORS is disabled (same-origin only).
allowed_origins = _parse_allowed_origins()
if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Map typed domain errors to HTTP status codes.

    NotFoundError -> 404, ConflictError -> 409, anything else -> 400.
    """
    if isinstance(exc, NotFoundError):
        status_code = 404
    elif isinstance(exc, ConflictError):
        status_code = 409
    else:
        status_code = 400
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Include routers
app.include_router(imports.router, prefix="/api/v1")
app.include_router(progress.router, prefix="/api/v1")


@app.get("/health")
def health_check() -> dict:
    """Health check endpoint with run status.

    Returns:
        Dictionary with health status, version, uptime and the current
        progress state.
    """
    uptime = int(_time.time() - _startup_time) if _startup_time else 0

    # Version from package metadata (matches pyproject.toml)
    try:
        version = _pkg_version("logisync")
    except Exception:
        version = "unknown"

    snapshot = get_engine().tracker.snapshot
    return {
        "status": "healthy",
        "version": version,
        "uptime_seconds": uptime,
        "progress_state": snapshot.state.value,
        "active_run": snapshot.run_id if snapshot.is_active else None,
    }


@app.get("/api")
def api_root() -> dict:
    """API root with links to docs."""
    return {
        "name": "LogiSync API",
        "version": "0.1.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }
