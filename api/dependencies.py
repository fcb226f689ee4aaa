"""
FastAPI dependencies
"""

from fastapi import Request
from ingestion.runner import ProcessingOrchestrator


def get_orchestrator(request: Request) -> ProcessingOrchestrator:
    """Orchestrator created at startup and shared by all requests"""
    return request.app.state.orchestrator
