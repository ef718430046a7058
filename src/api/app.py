"""Metapel FastAPI Application - Main Entry Point

Clinic management API for independent therapists: patient lifecycle,
session scheduling and task lists. Every route is scoped to the calling
therapist, identified by the ``x-user-id`` header.
"""

import os

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError

from src.api.patients import router as patients_router
from src.api.sessions import router as sessions_router
from src.api.tasks import router as tasks_router
from src.services.errors import ClinicError

logger = structlog.get_logger(__name__)

# Create FastAPI app with environment-aware configuration
app = FastAPI(
    title="Metapel - Clinic Management",
    version="0.1.0",
    description="Patient lifecycle, scheduling and tasks for independent therapists",
    docs_url="/docs" if os.environ.get("METAPEL_ENV") != "production" else None,
    redoc_url="/redoc" if os.environ.get("METAPEL_ENV") != "production" else None,
)


# =============================================================================
# Health Checks
# =============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint for the load balancer"""
    return {
        "status": "healthy",
        "service": "metapel",
        "version": "0.1.0",
    }


@app.get("/healthz")
async def healthz():
    """Kubernetes-style health check"""
    return {"status": "ok"}


# =============================================================================
# Error Handlers
# =============================================================================

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Return structured validation errors without exposing internal details"""
    return JSONResponse(
        status_code=422,
        content={
            "detail": "Invalid request",
            "type": "validation_error",
        },
    )


@app.exception_handler(ClinicError)
async def clinic_error_handler(request: Request, exc: ClinicError):
    """Map domain errors to 400/404/409 responses"""
    logger.warning(
        "request_rejected",
        path=request.url.path,
        method=request.method,
        status_code=exc.status_code,
        code=exc.code,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )


# =============================================================================
# API Routers
# =============================================================================

app.include_router(patients_router)
app.include_router(sessions_router)
app.include_router(tasks_router)


# =============================================================================
# Root Endpoint
# =============================================================================

@app.get("/")
async def root():
    """API root endpoint"""
    return {
        "service": "metapel",
        "description": "Clinic management for independent therapists",
        "version": "0.1.0",
        "docs": "/docs" if os.environ.get("METAPEL_ENV") != "production" else None,
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, workers=2)
