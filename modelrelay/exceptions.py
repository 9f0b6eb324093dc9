"""Error taxonomy shared by the broker and the worker agent."""

from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base class for errors that are reported over the wire."""

    code: str = "RelayError"
    default_message: str = "Relay error"

    def __init__(self, message: Optional[str] = None, detail: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.detail = detail

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message, "code": self.code}
        if self.detail is not None:
            payload["detail"] = self.detail
        return payload


# Client input and protocol errors (replied at the offending connection)

class EmptyContent(RelayError):
    code = "EmptyContent"
    default_message = "Content is required"


class DuplicateRequest(RelayError):
    code = "DuplicateRequest"
    default_message = "Request id is already pending"


class UnknownMessageType(RelayError):
    code = "UnknownMessageType"
    default_message = "Unknown message type"


class InvalidMessage(RelayError):
    code = "InvalidMessage"
    default_message = "Invalid message format"


# Request outcomes (delivered as request_failed)

class NoWorkerAvailable(RelayError):
    code = "NoWorkerAvailable"
    default_message = "No workers available"


class RequestTimeout(RelayError):
    code = "RequestTimeout"
    default_message = "Request timeout"


class GenerationError(RelayError):
    code = "GenerationError"
    default_message = "AI generation failed"


class ModelUnavailable(GenerationError):
    code = "ModelUnavailable"
    default_message = "Model is not available"


class GenerationTimeout(GenerationError):
    code = "GenerationTimeout"
    default_message = "Generation timed out"


# Infrastructure

class ConnectionLost(RelayError):
    code = "ConnectionLost"
    default_message = "Connection lost"


class WorkerAgentFatal(RelayError):
    """Raised when the worker agent exhausted its reconnect attempts."""

    code = "WorkerAgentFatal"
    default_message = "Worker agent gave up reconnecting"
