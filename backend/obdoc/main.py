"""
ObDoc Challenge Engine - Main FastAPI Application
"""

import logging
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from .config import settings
from .api import challenges_router
from .core.exceptions import (
    ChallengeError, ChallengeNotFound, EnrollmentNotFound, InsufficientPermissions,
    AlreadyParticipating, DailyRecordExists, NotPending, ChallengeNotActive, InvalidTransition,
    InvalidRecordData, DoctorApprovalRequired, HealthRiskDetected, AIServiceError,
)
from .core.logging_config import setup_logging
from .middleware import RequestLoggingMiddleware
from .services import init_challenge_service

# Logger will be initialized after setup_logging() is called
logger = logging.getLogger(__name__)

ERROR_STATUS = {
    ChallengeNotFound: status.HTTP_404_NOT_FOUND,
    EnrollmentNotFound: status.HTTP_404_NOT_FOUND,
    InsufficientPermissions: status.HTTP_403_FORBIDDEN,
    AlreadyParticipating: status.HTTP_409_CONFLICT,
    DailyRecordExists: status.HTTP_409_CONFLICT,
    NotPending: status.HTTP_409_CONFLICT,
    ChallengeNotActive: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    InvalidRecordData: status.HTTP_422_UNPROCESSABLE_ENTITY,
    DoctorApprovalRequired: status.HTTP_422_UNPROCESSABLE_ENTITY,
    HealthRiskDetected: status.HTTP_422_UNPROCESSABLE_ENTITY,
    AIServiceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: ChallengeError) -> int:
    """HTTP status code for a domain error."""
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS:
            return ERROR_STATUS[error_type]
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    # Startup
    setup_logging(settings)

    service = init_challenge_service()
    logger.info(f"Starting {settings.app_name} v{settings.app_version}")
    logger.info(f"Storage: {settings.storage_type} ({settings.local_storage_path})")
    logger.info(f"Log level: {settings.log_level.upper()}")
    logger.info(f"Debug mode: {settings.debug}")
    yield
    # Shutdown
    await service.aclose()
    logger.info(f"Shutting down {settings.app_name}")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Challenge progress and health-risk engine for doctor-supervised obesity management",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware (after CORS)
if settings.log_api_requests:
    app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(challenges_router)


@app.exception_handler(ChallengeError)
async def challenge_error_handler(request: Request, exc: ChallengeError):
    """Map domain errors to JSON error responses."""
    status_code = status_for(exc)
    log = logger.warning if status_code < 500 else logger.error
    log(
        f"{exc.code} on {request.method} {request.url.path}: {exc.message}",
        extra={"extra_fields": {"error": exc.code, "severity": exc.severity, "status_code": status_code}}
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "message": "ObDoc Challenge Engine - doctor-supervised habit challenges"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "storage": settings.storage_type,
        "version": settings.app_version
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "obdoc.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
