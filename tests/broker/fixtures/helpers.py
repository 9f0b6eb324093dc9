"""Test helper utilities for broker tests."""

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

from modelrelay.broker.core.handler import BrokerProtocolHandler
from modelrelay.broker.storage.models import ConnectionRole


async def wait_for_condition(
    condition_func,
    timeout: float = 5.0,
    interval: float = 0.02,
    error_message: str = "Condition not met within timeout",
):
    """Wait for a condition to become true."""
    loop = asyncio.get_running_loop()
    start_time = loop.time()
    while loop.time() - start_time < timeout:
        if await condition_func() if asyncio.iscoroutinefunction(condition_func) else condition_func():
            return True
        await asyncio.sleep(interval)
    raise TimeoutError(error_message)


class FakeWebSocket:
    """Server-side connection stand-in that records every frame sent to it."""

    def __init__(self, path: str = "/", remote_address: Tuple[str, int] = ("127.0.0.1", 50000)):
        self.request = SimpleNamespace(path=path)
        self.remote_address = remote_address
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.close_code: Optional[int] = None
        self.close_reason: Optional[str] = None
        self.fail_sends = False

    async def send(self, data: str):
        if self.closed or self.fail_sends:
            raise ConnectionError("socket is closed")
        self.sent.append(json.loads(data))

    async def close(self, code: int = 1000, reason: str = ""):
        self.closed = True
        self.close_code = code
        self.close_reason = reason

    def messages(self, message_type: Optional[str] = None) -> List[Dict[str, Any]]:
        if message_type is None:
            return list(self.sent)
        return [m for m in self.sent if m.get("type") == message_type]

    def last(self, message_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
        matching = self.messages(message_type)
        return matching[-1] if matching else None

    def clear(self):
        self.sent.clear()


async def connect_client(
    handler: BrokerProtocolHandler, model: Optional[str] = None
) -> Tuple[str, FakeWebSocket]:
    """Accept a client, optionally binding a model with ``connect``."""
    websocket = FakeWebSocket("/")
    connection_id = await handler.on_connect(websocket, ConnectionRole.CLIENT, "127.0.0.1:50000")
    if model is not None:
        await handler.handle_message(connection_id, {"type": "connect", "model": model})
    return connection_id, websocket


async def register_worker(
    handler: BrokerProtocolHandler,
    models: Optional[List[str]] = None,
    worker_id: Optional[str] = None,
    default_model: Optional[str] = None,
) -> Tuple[str, FakeWebSocket]:
    """Accept a worker and register its capabilities."""
    websocket = FakeWebSocket("/worker", ("127.0.0.1", 50001))
    connection_id = await handler.on_connect(websocket, ConnectionRole.WORKER, "127.0.0.1:50001")
    await handler.handle_message(
        connection_id,
        {
            "type": "register",
            "workerId": worker_id,
            "capabilities": models if models is not None else ["qwen-coder"],
            "defaultModel": default_model,
        },
    )
    return connection_id, websocket


class FakeGenerator:
    """Generator that answers from a canned reply or raises a canned error."""

    def __init__(
        self,
        reply: str = "generated",
        error: Optional[Exception] = None,
        delay: float = 0.0,
        models: Optional[List[str]] = None,
        list_error: Optional[Exception] = None,
    ):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.models = models if models is not None else ["qwen3:latest"]
        self.list_error = list_error
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    async def generate(self, model: str, prompt: str, options: Optional[Dict[str, Any]] = None) -> str:
        self.calls.append((model, prompt, options or {}))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.reply

    async def list_models(self) -> List[str]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.models)
