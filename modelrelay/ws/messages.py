"""Pydantic models for inbound message payloads.

Wire names are camelCase; Python attributes are snake_case. Legacy field names
from older clients and workers are accepted through ``AliasChoices``.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator


class WireModel(BaseModel):
    """Base for payload models: accepts aliases and ignores unknown fields."""

    type: str = Field(..., description="Message type discriminator")

    class Config:
        populate_by_name = True
        extra = "ignore"


class ConnectPayload(WireModel):
    model: Optional[str] = None


class SubmitRequestPayload(WireModel):
    content: Optional[str] = None
    model: Optional[str] = None
    request_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("requestId", "request_id")
    )
    options: Optional[Dict[str, Any]] = None


class RegisterPayload(WireModel):
    worker_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("workerId", "serverId", "worker_id")
    )
    capabilities: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("capabilities", "availableModels"),
    )
    default_model: Optional[str] = Field(
        None, validation_alias=AliasChoices("defaultModel", "default_model")
    )


class WorkerResultPayload(WireModel):
    correlation_id: str = Field(
        ..., validation_alias=AliasChoices("correlationId", "requestId", "correlation_id")
    )
    content: str = Field("", validation_alias=AliasChoices("content", "code"))
    model: Optional[str] = None


class WorkerErrorPayload(WireModel):
    correlation_id: str = Field(
        ..., validation_alias=AliasChoices("correlationId", "requestId", "correlation_id")
    )
    error: str = ""

    @field_validator("error", mode="before")
    @classmethod
    def error_to_text(cls, value: Any) -> str:
        """Workers may report errors as null, a string or a ``{"message": ...}`` object."""
        if value is None:
            return ""
        if isinstance(value, dict):
            message = value.get("message") or value.get("error")
            return str(message) if message else json.dumps(value)
        return str(value)


class WorkerStatusPayload(WireModel):
    correlation_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("correlationId", "requestId", "correlation_id")
    )
    status: str = ""


class DisconnectPayload(WireModel):
    worker_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("workerId", "serverId", "worker_id")
    )


class DispatchRequestPayload(WireModel):
    """Broker -> worker request, parsed on the worker side."""

    correlation_id: str = Field(
        ..., validation_alias=AliasChoices("correlationId", "requestId", "correlation_id")
    )
    content: str = ""
    model: Optional[str] = None
    options: Dict[str, Any] = Field(default_factory=dict)
