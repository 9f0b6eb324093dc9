"""Worker API response models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class WorkerHealthResponse(BaseModel):
    """Response model for the worker health check."""

    status: str = "healthy"
    ollama: str = "connected"
    broker_connection: str = Field(..., alias="brokerConnection")
    worker_id: str = Field(..., alias="workerId")
    available_models: List[str] = Field(default_factory=list, alias="availableModels")
    installed_models: List[str] = Field(default_factory=list, alias="installedModels")
    error: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        populate_by_name = True


class WorkerStatusResponse(BaseModel):
    """Response model for worker connection status."""

    worker_id: str = Field(..., alias="workerId")
    state: str
    broker_connection: str = Field(..., alias="brokerConnection")
    broker_url: str = Field(..., alias="brokerUrl")
    connection_id: Optional[str] = Field(default=None, alias="connectionId")
    reconnect_attempts: int = Field(0, alias="reconnectAttempts")
    pending_requests: int = Field(0, alias="pendingRequests")
    available_models: List[str] = Field(default_factory=list, alias="availableModels")
    default_model: str = Field(..., alias="defaultModel")
    timestamp: datetime = Field(default_factory=datetime.now)

    class Config:
        populate_by_name = True
