"""WebSocket message type definitions.

Every message is a JSON object with a ``type`` discriminator. Field names on
the wire are camelCase (``requestId``, ``correlationId``, ``workerPoolSize``).
"""

from datetime import datetime
from typing import Any, Dict


class ClientMessages:
    """Client -> broker message types"""

    CONNECT = "connect"
    SUBMIT_REQUEST = "submit_request"
    HEARTBEAT = "heartbeat"
    # Legacy keep-alive
    PING = "ping"


class BrokerToClientMessages:
    """Broker -> client message types"""

    CONNECTION_ACK = "connection_ack"
    PROCESSING_STARTED = "processing_started"
    REQUEST_COMPLETED = "request_completed"
    REQUEST_FAILED = "request_failed"
    ERROR = "error"
    HEARTBEAT_ACK = "heartbeat_ack"


class WorkerMessages:
    """Worker -> broker message types"""

    REGISTER = "register"
    WORKER_RESULT = "worker_result"
    WORKER_ERROR = "worker_error"
    WORKER_STATUS = "worker_status"
    DISCONNECT = "disconnect"
    HEARTBEAT = "heartbeat"
    PING = "ping"


class BrokerToWorkerMessages:
    """Broker -> worker message types"""

    REGISTER_ACK = "register_ack"
    DISPATCH_REQUEST = "dispatch_request"
    HEARTBEAT_ACK = "heartbeat_ack"
    ERROR = "error"


class WorkerStatus:
    """Values of ``worker_status.status``"""

    PROCESSING = "processing"


def create_message(message_type: str, **fields: Any) -> Dict[str, Any]:
    """Build an outbound message; ``None`` fields are dropped."""
    message: Dict[str, Any] = {"type": message_type}
    message.update({key: value for key, value in fields.items() if value is not None})
    message.setdefault("timestamp", datetime.now().isoformat())
    return message


def preview(content: str, length: int = 100) -> str:
    """Shortened copy of request content echoed back to clients."""
    if len(content) <= length:
        return content
    return content[:length] + "..."
