"""WebSocket utility functions for cross-version compatibility."""

import json
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from ..logger import logger


def is_websocket_closed(websocket: Any) -> bool:
    """Check if a WebSocket connection is closed in a version-compatible way.

    This function handles the differences between websockets library versions:
    - Legacy protocol objects expose a 'closed' property
    - The asyncio implementation only sets 'close_code' once closed

    Args:
        websocket: The WebSocket connection to check

    Returns:
        True if the connection is closed, False otherwise
    """
    if websocket is None:
        return True

    # For older versions of websockets library
    if hasattr(websocket, 'closed'):
        return bool(websocket.closed)

    # For newer versions of websockets library
    return getattr(websocket, 'close_code', None) is not None


def get_request_path(websocket: Any) -> str:
    """Return the request path (without query string) of an accepted connection."""
    request = getattr(websocket, 'request', None)
    path = getattr(request, 'path', None) if request is not None else None
    if path is None:
        path = getattr(websocket, 'path', None)
    if not isinstance(path, str) or not path:
        return '/'
    return urlparse(path).path or '/'


def get_remote_address(websocket: Any) -> str:
    """Format the peer address for logs."""
    addr = getattr(websocket, 'remote_address', None)
    if isinstance(addr, (list, tuple)) and len(addr) >= 2:
        return f"{addr[0]}:{addr[1]}"
    return "unknown"


async def send_websocket_message(websocket: Any, message: Dict[str, Any]) -> bool:
    """Send a message via WebSocket with error handling.

    Args:
        websocket: The WebSocket connection
        message: The message to send (will be JSON-encoded)

    Returns:
        True if message was sent successfully, False otherwise
    """
    try:
        if not is_websocket_closed(websocket):
            await websocket.send(json.dumps(message))
            return True
        else:
            logger.debug(f"WebSocket connection is closed, dropping '{message.get('type')}' message")
            return False
    except Exception as e:
        logger.error(f"Failed to send WebSocket message: {e}")
        return False


async def close_websocket_safely(
    websocket: Any, code: int = 1000, reason: str = ""
) -> None:
    """Close a WebSocket connection safely with error handling.

    Args:
        websocket: The WebSocket connection to close
        code: Close code sent to the peer
        reason: Close reason sent to the peer
    """
    try:
        if not is_websocket_closed(websocket):
            await websocket.close(code, reason)
    except Exception as e:
        logger.debug(f"Error closing websocket: {e}")


def parse_message(raw: Any) -> Optional[Dict[str, Any]]:
    """Decode a JSON text frame into a dict, or None when it is not an object."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode('utf-8')
    data = json.loads(raw)
    if not isinstance(data, dict):
        return None
    return data
