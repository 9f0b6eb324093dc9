"""API response models."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class HealthCheckResponse(BaseModel):
    """Response model for the liveness check."""

    status: str = "healthy"
    timestamp: datetime = Field(default_factory=datetime.now)
    server: str = "modelrelay-broker"


class StatusResponse(BaseModel):
    """Response model for broker status."""

    broker: str = "online"
    workers: int
    clients: int
    pending_requests: int = Field(..., alias="pendingRequests")
    worker_connectivity: str = Field(..., alias="workerConnectivity")
    available_models: List[str] = Field(default_factory=list, alias="availableModels")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        populate_by_name = True


class ConnectionResponse(BaseModel):
    """Response model for one tracked connection."""

    id: str
    role: str
    state: str
    remote_address: str = Field(..., alias="remoteAddress")
    connected_at: datetime = Field(..., alias="connectedAt")
    last_activity_at: datetime = Field(..., alias="lastActivityAt")
    message_count: int = Field(0, alias="messageCount")

    # Worker only
    worker_id: Optional[str] = Field(default=None, alias="workerId")
    capabilities: Optional[List[str]] = None
    default_model: Optional[str] = Field(default=None, alias="defaultModel")

    # Client only
    bound_model: Optional[str] = Field(default=None, alias="boundModel")

    class Config:
        populate_by_name = True


class WsStatsResponse(BaseModel):
    """Response model for connection listings."""

    clients: List[ConnectionResponse] = Field(default_factory=list)
    workers: List[ConnectionResponse] = Field(default_factory=list)
    available_workers: int = Field(0, alias="availableWorkers")
    pending_requests: int = Field(0, alias="pendingRequests")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        populate_by_name = True


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str
    code: Optional[str] = None
    detail: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class ProcessClipboardRequest(BaseModel):
    """Request model for one-shot HTTP submission."""

    content: Optional[str] = None
    model: Optional[str] = None
    options: Optional[Dict[str, Any]] = None
    timestamp: Optional[Any] = None


class ProcessClipboardResponse(BaseModel):
    """Response model for a completed HTTP submission."""

    success: bool = True
    request_id: str = Field(..., alias="requestId")
    ai_code: str = Field(..., alias="aiCode")
    model: Optional[str] = None
    original_content: str = Field("", alias="originalContent")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        populate_by_name = True
