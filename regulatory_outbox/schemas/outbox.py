import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class RetryRequest(BaseModel):
    """Schema for a manual retry. Omit event_ids to reset every failed/dead record."""
    event_ids: Optional[List[uuid.UUID]] = Field(None, description="Outbox record ids to reset.")


class RetryResponse(BaseModel):
    reset: int
    message: str


class ProcessingStatsResponse(BaseModel):
    """Outbox processing statistics over a time window."""
    pending: int
    processed: int
    failed: int
    dead: int
    total_attempts: int
    window_start: Optional[datetime] = None


class DispatchReportResponse(BaseModel):
    """Result of an on-demand dispatch cycle. skipped is true if one was already running."""
    skipped: bool = False
    claimed: int = 0
    processed: int = 0
    failed: int = 0
    dead: int = 0
    released: int = 0
