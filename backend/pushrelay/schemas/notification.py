"""Notification send, broadcast, and history schemas."""
from datetime import datetime
from typing import Optional, List, Any
from pydantic import BaseModel, ConfigDict, Field


class SendRequest(BaseModel):
    """Notification content for a single send or a broadcast."""
    title: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class SendResponse(BaseModel):
    success: bool = True
    message: str
    ticket: Optional[dict[str, Any]] = None


class TestTokenResponse(SendResponse):
    timestamp: datetime


class BroadcastStats(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success_count: int = Field(..., serialization_alias="successCount")
    fail_count: int = Field(..., serialization_alias="failCount")
    tickets: int


class BroadcastResponse(BaseModel):
    success: bool = True
    stats: BroadcastStats


class HistoryEntry(BaseModel):
    """One notification log entry."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[str] = None
    title: str
    body: str
    data: Optional[dict[str, Any]] = None
    type: str
    status: str
    ticket_id: Optional[str] = None
    error: Optional[str] = None
    sent_at: datetime


class HistoryResponse(BaseModel):
    success: bool = True
    history: List[HistoryEntry]
