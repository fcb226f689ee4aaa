"""
Health check endpoint with processing status
"""

from fastapi import APIRouter, Depends, Response
from api.dependencies import get_orchestrator
from ingestion.health import DOWN
from ingestion.runner import ProcessingOrchestrator
from schemas.processing import HealthReport
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthReport)
async def health_check(
    response: Response,
    orchestrator: ProcessingOrchestrator = Depends(get_orchestrator),
):
    """
    Health check endpoint.

    Returns:
    - UP / DEGRADED / DOWN with the issues behind it
    - Failure rate over the last 24 hours
    - Last completed file and staleness
    DOWN is reported with HTTP 503.
    """
    report = await orchestrator.get_health()
    if report.status == DOWN:
        logger.warning(f"Processing health DOWN: {report.issues}")
        response.status_code = 503
    return report
