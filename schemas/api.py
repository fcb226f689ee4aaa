"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, List


class TriggerResponse(BaseModel):
    """Result of a processing trigger"""
    accepted: bool
    message: str
    job_id: Optional[str] = Field(None, description="Set for accepted asynchronous triggers")


class RetryResponse(BaseModel):
    original_job_id: str
    job_id: str


class ProcessingLogsResponse(BaseModel):
    job_id: str
    lines: List[str] = Field(default_factory=list)


class MessageResponse(BaseModel):
    message: str


class ErrorResponse(BaseModel):
    error_type: str
    message: str
    request_id: Optional[str] = None
