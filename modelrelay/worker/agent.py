"""Worker agent: keeps one outbound connection to the broker and serves dispatched requests."""

import asyncio
import json
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set

import websockets
from pydantic import ValidationError
from websockets.exceptions import WebSocketException

from modelrelay.config import WorkerSettings
from modelrelay.exceptions import GenerationError, WorkerAgentFatal
from modelrelay.logger import logger
from modelrelay.ws.events import (
    BrokerToWorkerMessages,
    WorkerMessages,
    WorkerStatus,
    create_message,
)
from modelrelay.ws.messages import DispatchRequestPayload
from modelrelay.ws.retry_config import calculate_retry_delay, should_retry
from modelrelay.ws.utils import (
    close_websocket_safely,
    is_websocket_closed,
    parse_message,
    send_websocket_message,
)
from .generation import Generator, OllamaGenerator
from .prompt import build_prompt


class AgentState(str, Enum):
    """Worker agent connection state."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    REGISTERED = "registered"     # Registration sent, waiting for register_ack
    ACTIVE = "active"
    RECONNECTING = "reconnecting"  # Backing off before the next connect
    STOPPED = "stopped"
    FAILED = "failed"             # Gave up reconnecting


class WorkerAgent:
    """Reconnecting broker client for one compute worker.

    Every connect re-sends registration, since the broker forgets a worker as
    soon as its socket closes. Each dispatched request is answered with
    exactly one ``worker_result`` or ``worker_error`` carrying the
    correlation id it arrived with.
    """

    def __init__(
        self,
        settings: Optional[WorkerSettings] = None,
        generator: Optional[Generator] = None,
        prompt_builder: Callable[[str], str] = build_prompt,
    ):
        self.settings = settings or WorkerSettings()
        self.generator = generator or OllamaGenerator(
            self.settings.ollama_url, timeout=self.settings.generation_timeout
        )
        self.prompt_builder = prompt_builder

        self.state = AgentState.DISCONNECTED
        self.websocket: Any = None
        self.attempts = 0
        self.connection_id: Optional[str] = None

        self._stopping = False
        self._stop_event = asyncio.Event()
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._request_tasks: Set[asyncio.Task] = set()

    @property
    def worker_id(self) -> str:
        return self.settings.worker_id

    @property
    def connected(self) -> bool:
        return self.state in (AgentState.REGISTERED, AgentState.ACTIVE)

    # ==================== Lifecycle ====================

    async def run(self) -> None:
        """Connect and serve until ``stop`` is called.

        Raises:
            WorkerAgentFatal: reconnecting failed ``retry.max_attempts`` times in a row.
        """
        retry = self.settings.retry

        if self.settings.startup_delay > 0:
            logger.info(f"Waiting {self.settings.startup_delay:g}s before connecting to the broker")
            await self._sleep(self.settings.startup_delay)

        while not self._stopping:
            self._set_state(AgentState.CONNECTING)
            endpoint = self.settings.endpoint
            try:
                logger.info(f"Connecting to broker at {endpoint}")
                async with websockets.connect(endpoint, ping_interval=20, ping_timeout=20) as websocket:
                    self.websocket = websocket
                    self.attempts = 0
                    logger.info(f"Connected to broker as worker {self.worker_id}")
                    await self._serve(websocket)
                logger.warning("Broker connection closed")
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                logger.error(f"Broker connection failed: {e}")
            finally:
                self.websocket = None
                self.connection_id = None
                await self._stop_heartbeat()

            if self._stopping:
                break

            if not should_retry(self.attempts, retry):
                self._set_state(AgentState.FAILED)
                logger.critical(
                    f"Giving up on broker {endpoint} after {self.attempts} failed reconnect attempts"
                )
                raise WorkerAgentFatal(detail=f"Could not reach {endpoint} after {self.attempts} attempts")

            delay = calculate_retry_delay(self.attempts, retry) / 1000
            self.attempts += 1
            self._set_state(AgentState.RECONNECTING)
            logger.info(f"Reconnecting in {delay:g}s (attempt {self.attempts}/{retry.max_attempts})")
            await self._sleep(delay)

        self._set_state(AgentState.STOPPED)

    async def stop(self) -> None:
        """Announce departure, close the connection and end ``run``."""
        if self._stopping:
            return

        self._stopping = True
        self._stop_event.set()
        logger.info(f"Stopping worker {self.worker_id}")

        websocket = self.websocket
        if websocket is not None and not is_websocket_closed(websocket):
            await send_websocket_message(
                websocket, create_message(WorkerMessages.DISCONNECT, workerId=self.worker_id)
            )
            await close_websocket_safely(websocket, 1000, "worker shutdown")

        await self._stop_heartbeat()

        for task in list(self._request_tasks):
            task.cancel()
        if self._request_tasks:
            await asyncio.gather(*self._request_tasks, return_exceptions=True)
        self._request_tasks.clear()

    # ==================== Connection ====================

    async def _serve(self, websocket: Any) -> None:
        await send_websocket_message(
            websocket,
            create_message(
                WorkerMessages.REGISTER,
                workerId=self.worker_id,
                capabilities=self.settings.capabilities,
                defaultModel=self.settings.default_model,
            ),
        )
        self._set_state(AgentState.REGISTERED)

        async for raw in websocket:
            await self._handle_raw(websocket, raw)

    async def _handle_raw(self, websocket: Any, raw: Any) -> None:
        try:
            data = parse_message(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"Invalid JSON from broker: {e}")
            return
        if data is None:
            logger.warning("Ignoring non-object message from broker")
            return

        message_type = data.get("type")
        logger.debug(f"Received message from broker: {message_type}")

        if message_type == BrokerToWorkerMessages.REGISTER_ACK:
            self.connection_id = data.get("connectionId")
            self._set_state(AgentState.ACTIVE)
            logger.info(f"Registered with broker (connection {self.connection_id})")
            self._start_heartbeat(websocket)

        elif message_type == BrokerToWorkerMessages.DISPATCH_REQUEST:
            try:
                payload = DispatchRequestPayload.model_validate(data)
            except ValidationError as e:
                logger.error(f"Malformed dispatch_request from broker: {e}")
                return
            task = asyncio.create_task(self._process_request(websocket, payload))
            self._request_tasks.add(task)
            task.add_done_callback(self._request_tasks.discard)

        elif message_type == BrokerToWorkerMessages.HEARTBEAT_ACK:
            logger.debug("Heartbeat acknowledged")

        elif message_type == BrokerToWorkerMessages.ERROR:
            logger.warning(f"Broker reported an error: {data.get('code')}: {data.get('message')}")

        else:
            logger.debug(f"Ignoring unknown message type from broker: {message_type}")

    # ==================== Requests ====================

    async def _process_request(self, websocket: Any, payload: DispatchRequestPayload) -> None:
        correlation_id = payload.correlation_id
        logger.info(f"Processing request {correlation_id} (model: {payload.model})")

        await send_websocket_message(
            websocket,
            create_message(
                WorkerMessages.WORKER_STATUS,
                correlationId=correlation_id,
                status=WorkerStatus.PROCESSING,
            ),
        )

        local_model = self.settings.resolve_model(payload.model)
        try:
            prompt = self.prompt_builder(payload.content)
            content = await self.generator.generate(local_model, prompt, payload.options)
        except GenerationError as e:
            logger.error(f"Generation failed for request {correlation_id}: {e.code}: {e.detail or e.message}")
            reply = create_message(
                WorkerMessages.WORKER_ERROR,
                correlationId=correlation_id,
                error=e.detail or e.message,
            )
        except Exception as e:
            logger.exception(f"Unexpected error processing request {correlation_id}: {e}")
            reply = create_message(
                WorkerMessages.WORKER_ERROR,
                correlationId=correlation_id,
                error=str(e) or type(e).__name__,
            )
        else:
            logger.info(f"Request {correlation_id} completed with {local_model}")
            reply = create_message(
                WorkerMessages.WORKER_RESULT,
                correlationId=correlation_id,
                content=content,
                model=payload.model,
            )

        if not await send_websocket_message(websocket, reply):
            logger.warning(f"Could not deliver reply for request {correlation_id}; broker connection lost")

    # ==================== Heartbeat ====================

    def _start_heartbeat(self, websocket: Any) -> None:
        if self._heartbeat_task is not None and not self._heartbeat_task.done():
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(websocket))

    async def _stop_heartbeat(self) -> None:
        task = self._heartbeat_task
        self._heartbeat_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _heartbeat_loop(self, websocket: Any) -> None:
        """Send heartbeats while the connection stays open."""
        interval = self.settings.heartbeat_interval
        while not is_websocket_closed(websocket):
            await asyncio.sleep(interval)
            sent = await send_websocket_message(
                websocket, create_message(WorkerMessages.HEARTBEAT, workerId=self.worker_id)
            )
            if not sent:
                break

    # ==================== Helpers ====================

    def _set_state(self, state: AgentState) -> None:
        if self.state != state:
            logger.debug(f"Worker agent state: {self.state.value} -> {state.value}")
            self.state = state

    async def _sleep(self, delay: float) -> None:
        """Sleep that ends early when the agent is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass

    def get_status(self) -> Dict[str, Any]:
        return {
            "workerId": self.worker_id,
            "state": self.state.value,
            "brokerConnection": "connected" if self.connected else "disconnected",
            "attempts": self.attempts,
            "connectionId": self.connection_id,
            "pendingRequests": len(self._request_tasks),
        }
