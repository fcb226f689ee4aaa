"""
Processing trigger and job management endpoints
"""

from datetime import datetime
from typing import List, Optional
import logging

from fastapi import APIRouter, Depends, Query, Request

from api.dependencies import get_orchestrator
from ingestion.runner import ProcessingOrchestrator
from models.base import ProviderType
from schemas.api import MessageResponse, ProcessingLogsResponse, RetryResponse, TriggerResponse
from schemas.processing import ConfigurationReport, ProcessingStatusResponse, ProcessingTriggerRequest

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/processing", tags=["Processing"])


@router.post("/trigger", response_model=TriggerResponse)
async def trigger_processing(
    payload: ProcessingTriggerRequest,
    request: Request,
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    """
    Trigger a processing run.

    Synchronous triggers block until the run ends and return its summary.
    Asynchronous triggers return the job id immediately; poll
    GET /processing/jobs/{job_id} for progress.
    """
    request_id = getattr(request.state, "request_id", None)
    logger.info(
        f"[{request_id}] POST /processing/trigger - provider={payload.provider}, "
        f"max_files={payload.max_files}, asynchronous={payload.asynchronous}"
    )

    result = await orchestrator.trigger_processing(payload)
    if payload.asynchronous:
        return TriggerResponse(
            accepted=True,
            message=f"Processing started asynchronously. Job ID: {result}",
            job_id=result,
        )
    return TriggerResponse(accepted=True, message=result)


@router.get("/jobs", response_model=List[ProcessingStatusResponse])
async def list_jobs(
    limit: int = Query(50, ge=1, le=500, description="Number of recent jobs to return"),
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.list_jobs(limit)


@router.get("/history", response_model=List[ProcessingStatusResponse])
async def get_history(
    provider: Optional[ProviderType] = Query(None, description="Filter by provider"),
    start: Optional[datetime] = Query(None, description="Created on or after (default: 30 days ago)"),
    end: Optional[datetime] = Query(None, description="Created on or before (default: now)"),
    limit: int = Query(100, ge=1, le=1000),
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.get_processing_history(provider, start, end, limit)


@router.delete("/history", response_model=MessageResponse)
async def clear_history(
    older_than_days: Optional[int] = Query(None, ge=0, description="Default: retention days"),
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    deleted = await orchestrator.clear_processing_history(older_than_days)
    return MessageResponse(message=f"Deleted {deleted} processing jobs")


@router.get("/jobs/{job_id}", response_model=ProcessingStatusResponse)
async def get_job(job_id: str, orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.get_job_status(job_id)


@router.post("/jobs/{job_id}/stop", response_model=MessageResponse)
async def stop_job(job_id: str, orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    return MessageResponse(message=await orchestrator.stop_job(job_id))


@router.post("/jobs/{job_id}/retry", response_model=RetryResponse)
async def retry_job(job_id: str, orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    new_job_id = await orchestrator.retry_job(job_id)
    return RetryResponse(original_job_id=job_id, job_id=new_job_id)


@router.get("/jobs/{job_id}/logs", response_model=ProcessingLogsResponse)
async def get_job_logs(
    job_id: str,
    limit: Optional[int] = Query(None, ge=1, le=1000),
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    lines = await orchestrator.get_processing_logs(job_id, limit)
    return ProcessingLogsResponse(job_id=job_id, lines=lines)


@router.post("/pause", response_model=MessageResponse)
async def pause(orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    orchestrator.pause_scheduled_processing()
    return MessageResponse(message="Scheduled processing paused")


@router.post("/resume", response_model=MessageResponse)
async def resume(orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    orchestrator.resume_scheduled_processing()
    return MessageResponse(message="Scheduled processing resumed")


@router.post("/maintenance/recover-stuck", response_model=MessageResponse)
async def recover_stuck(orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    recovered = await orchestrator.recover_stuck_files()
    return MessageResponse(message=f"Recovered {recovered} stuck files")


@router.post("/maintenance/cleanup", response_model=MessageResponse)
async def cleanup(orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    deleted = await orchestrator.cleanup_old_processed_files()
    return MessageResponse(message=f"Deleted {deleted} processed file records")


@router.get("/config/validate", response_model=ConfigurationReport)
async def validate_configuration(orchestrator: ProcessingOrchestrator = Depends(get_orchestrator)):
    return await orchestrator.validate_configuration()
