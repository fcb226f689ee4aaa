"""
File processing statistics endpoint
"""
from fastapi import APIRouter, Depends, Query, Request
from api.dependencies import get_orchestrator
from ingestion.runner import ProcessingOrchestrator
from models.base import ProviderType
from schemas.processing import FileStatistics
from typing import Optional
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats/files", response_model=FileStatistics)
async def get_file_stats(
    request: Request,
    provider: Optional[ProviderType] = Query(None, description="Restrict to one provider"),
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    """
    File tracking counts per status with success and failure rates (percent).
    """
    request_id = getattr(request.state, "request_id", None)
    logger.info(f"[{request_id}] GET /stats/files provider={provider}")

    stats = await orchestrator.get_file_statistics(provider)

    logger.info(
        f"[{request_id}] Stats: {stats.total} files, {stats.completed} completed, {stats.failed} failed"
    )
    return stats
