"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import health, processing, stats
from core.config import settings
from core.exceptions import (
    IllegalJobStateError,
    IngestionException,
    InvalidTriggerRequestError,
    JobNotFoundError,
    ProcessingAlreadyActiveError,
    ProcessingJobError,
)
from core.logging import setup_logging
import logging
from api.middleware import RequestContextMiddleware
from ingestion.runner import ProcessingOrchestrator
from ingestion.scheduler import ProcessingScheduler
from schemas.api import ErrorResponse

setup_logging()

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Review Ingestion Service",
    description="Ingests provider review files from S3 and tracks processing jobs",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)


# Include routers
app.include_router(health.router)
app.include_router(processing.router)
app.include_router(stats.router)


def _error_response(request: Request, exc: IngestionException, status_code: int) -> JSONResponse:
    body = ErrorResponse(
        error_type=type(exc).__name__,
        message=exc.message,
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.exception_handler(JobNotFoundError)
async def job_not_found_handler(request: Request, exc: JobNotFoundError):
    return _error_response(request, exc, 404)


@app.exception_handler(ProcessingAlreadyActiveError)
async def already_active_handler(request: Request, exc: ProcessingAlreadyActiveError):
    return _error_response(request, exc, 409)


@app.exception_handler(IllegalJobStateError)
async def illegal_state_handler(request: Request, exc: IllegalJobStateError):
    return _error_response(request, exc, 409)


@app.exception_handler(InvalidTriggerRequestError)
async def invalid_request_handler(request: Request, exc: InvalidTriggerRequestError):
    return _error_response(request, exc, 400)


@app.exception_handler(ProcessingJobError)
async def processing_job_error_handler(request: Request, exc: ProcessingJobError):
    return _error_response(request, exc, 400)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info("Starting Review Ingestion Service")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    logger.info(f"Source: s3://{settings.S3_BUCKET_NAME}/{settings.S3_PREFIX}")

    orchestrator = ProcessingOrchestrator()
    app.state.orchestrator = orchestrator
    app.state.scheduler = None

    if settings.SCHEDULER_ENABLED:
        scheduler = ProcessingScheduler(orchestrator)
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Review Ingestion Service")
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        scheduler.stop()
    orchestrator = getattr(app.state, "orchestrator", None)
    if orchestrator is not None:
        await orchestrator.shutdown()


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Review Ingestion Service",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "processing": "/processing",
            "stats": "/stats/files"
        }
    }
