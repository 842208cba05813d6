# ============================================================================
# JOBTRACK - MAIN APPLICATION
# ============================================================================
# STATUS: Core - FastAPI application entry point
# PURPOSE: Jobs API with lifespan-managed database pool
# CREATED: 18 OCT 2026
# ============================================================================
"""
Job Tracking Main Application

FastAPI application that:
1. Provides the HTTP API the workflow engine and users call
2. Owns the database pool for the lifetime of the process
3. Optionally deploys the schema (with notify triggers) on startup

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager

import psycopg
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from __version__ import __version__, BUILD_DATE
from core.config import get_defaults
from core.logging import configure_logging, get_logger, ComponentType
from core.schema import PydanticToSQL
from repositories.database import SCHEMA, get_connection_string, open_pool
from services import JobService, WorkflowErrorService
from api.routes import router, set_services

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = get_logger(__name__, ComponentType.API)


def _bootstrap_schema(notify_channel: str) -> None:
    generator = PydanticToSQL(schema_name=SCHEMA)
    with psycopg.connect(get_connection_string()) as conn:
        generator.execute(conn, notify_channel=notify_channel)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup, cleans up on shutdown.
    """
    defaults = get_defaults()
    logger.info(f"Starting job tracker v{__version__} (Build {BUILD_DATE})")

    # Optional: Bootstrap schema on startup (for development)
    if os.environ.get("AUTO_BOOTSTRAP_SCHEMA", "").lower() == "true":
        logger.info("Auto-bootstrap enabled, deploying schema...")
        try:
            _bootstrap_schema(defaults.realtime.notify_channel)
            logger.info("Schema bootstrap completed successfully")
        except psycopg.Error as e:
            logger.warning(f"Schema bootstrap failed (may already exist): {e}")

    pool = await open_pool()
    app.state.pool = pool

    job_service = JobService(pool, defaults.jobs)
    error_service = WorkflowErrorService(pool)
    set_services(job_service=job_service, error_service=error_service)
    logger.info("Services initialized")

    yield

    logger.info("Shutting down job tracker...")
    set_services(job_service=None, error_service=None)
    await pool.close()
    logger.info("Job tracker stopped")


# Create FastAPI app
app = FastAPI(
    title="Job Tracker",
    description="Job and step tracking for externally executed workflows",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.environ.get("CORS_ORIGINS", "*").split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are client errors (400), not 422."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"detail": f"{location}: {message}" if location else message},
    )


# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Job Tracker",
        "version": __version__,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/health")
async def health(request: Request):
    """Liveness plus a database round trip."""
    pool = getattr(request.app.state, "pool", None)
    if pool is None:
        return JSONResponse(status_code=503, content={"status": "starting"})
    try:
        async with pool.connection() as conn:
            await conn.execute("SELECT 1")
    except psycopg.Error as e:
        logger.warning(f"Health check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unhealthy", "database": str(e)})
    return {"status": "healthy", "database": "ok"}


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
