"""Pydantic schemas for the read-only pipeline API."""
from datetime import datetime
from typing import Any, List, Optional

from pydantic import AliasChoices, BaseModel, Field


class PipelineEventResponse(BaseModel):
    id: int
    step_order: int
    event_type: str
    status: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    input_payload: Optional[dict[str, Any]] = None
    output_payload: Optional[dict[str, Any]] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("event_metadata", "metadata")
    )

    class Config:
        from_attributes = True


class PipelineRunResponse(BaseModel):
    id: int
    synced_email_id: int
    user_id: Optional[int] = None
    trigger: str
    mode: Optional[str] = None
    status: str
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None
    metadata: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("run_metadata", "metadata")
    )

    class Config:
        from_attributes = True


class PipelineRunDetail(PipelineRunResponse):
    events: List[PipelineEventResponse] = []
