"""Broker protocol handler: per-connection message interpretation."""

import json
import uuid
from typing import Any, Awaitable, Callable, Dict, Optional

from pydantic import ValidationError

from modelrelay.config import BrokerSettings
from modelrelay.exceptions import (
    ConnectionLost,
    DuplicateRequest,
    EmptyContent,
    GenerationError,
    InvalidMessage,
    NoWorkerAvailable,
    RelayError,
    RequestTimeout,
    UnknownMessageType,
)
from modelrelay.logger import logger
from modelrelay.ws.events import (
    BrokerToClientMessages,
    BrokerToWorkerMessages,
    ClientMessages,
    WorkerMessages,
    create_message,
    preview,
)
from modelrelay.ws.messages import (
    ConnectPayload,
    DisconnectPayload,
    RegisterPayload,
    SubmitRequestPayload,
    WorkerErrorPayload,
    WorkerResultPayload,
    WorkerStatusPayload,
)
from modelrelay.ws.utils import is_websocket_closed, parse_message, send_websocket_message
from ..storage.models import (
    ConnectionRecord,
    ConnectionRole,
    ConnectionState,
    PendingRequest,
    WorkerCapabilities,
    WorkerReply,
)
from .pending import PendingRequestTable
from .registry import ConnectionRegistry
from .selector import WorkerSelector


MessageHandler = Callable[[ConnectionRecord, Dict[str, Any]], Awaitable[None]]


class BrokerProtocolHandler:
    """Interprets inbound messages from clients and workers.

    Connection lifecycle: CONNECTING -> (REGISTERED) -> ACTIVE -> CLOSED.
    The role is fixed at accept time from the endpoint; message content never
    changes it. A client's reply is delivered from the worker's message
    handling, never by waiting inside the client's own handling.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        pending: PendingRequestTable,
        selector: WorkerSelector,
        settings: Optional[BrokerSettings] = None,
    ):
        self.registry = registry
        self.pending = pending
        self.selector = selector
        self.settings = settings or BrokerSettings()
        self.pending.set_timeout_callback(self._on_request_timeout)

        self._client_handlers: Dict[str, MessageHandler] = {
            ClientMessages.CONNECT: self._handle_connect,
            ClientMessages.SUBMIT_REQUEST: self._handle_submit_request,
            ClientMessages.HEARTBEAT: self._handle_heartbeat,
            ClientMessages.PING: self._handle_heartbeat,
        }
        self._worker_handlers: Dict[str, MessageHandler] = {
            WorkerMessages.REGISTER: self._handle_register,
            WorkerMessages.WORKER_RESULT: self._handle_worker_result,
            WorkerMessages.WORKER_ERROR: self._handle_worker_error,
            WorkerMessages.WORKER_STATUS: self._handle_worker_status,
            WorkerMessages.DISCONNECT: self._handle_worker_disconnect,
            WorkerMessages.HEARTBEAT: self._handle_heartbeat,
            WorkerMessages.PING: self._handle_heartbeat,
        }

    # ==================== Connection lifecycle ====================

    async def on_connect(
        self, websocket: Any, role: ConnectionRole, remote_address: str = "unknown"
    ) -> str:
        """Register an accepted connection and greet clients."""
        connection_id = self.registry.register(role, websocket, remote_address=remote_address)
        stats = self.registry.get_connection_stats()
        logger.info(
            f"{role.value.capitalize()} connected: {connection_id} from {remote_address} | "
            f"clients: {stats['clients']}, workers: {stats['workers']}"
        )

        if role == ConnectionRole.CLIENT:
            self.registry.bind_model(connection_id, self.settings.default_model)
            await self.send_to(
                connection_id,
                create_message(
                    BrokerToClientMessages.CONNECTION_ACK,
                    clientId=connection_id,
                    workerPoolSize=self.worker_pool_size(),
                    model=self.settings.default_model,
                ),
            )
        return connection_id

    async def on_disconnect(self, connection_id: str) -> None:
        """Forget a closed connection; safe to call more than once.

        Requests already dispatched to a departing worker are left to expire
        through their timeout.
        """
        record = self.registry.remove(connection_id)
        if record is None:
            return

        if record.role == ConnectionRole.WORKER:
            orphaned = self.pending.count_for_worker(connection_id)
            if orphaned:
                logger.warning(
                    f"Worker {connection_id} disconnected with {orphaned} pending request(s); "
                    f"they will time out"
                )
        stats = self.registry.get_connection_stats()
        logger.info(
            f"{record.role.value.capitalize()} disconnected: {connection_id} | "
            f"clients: {stats['clients']}, workers: {stats['workers']}"
        )

    # ==================== Inbound messages ====================

    async def handle_raw(self, connection_id: str, raw: Any) -> None:
        """Decode one text frame and handle it; errors are reported to the sender."""
        try:
            data = parse_message(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"JSON decode error from {connection_id}: {e}")
            await self._send_error(connection_id, InvalidMessage(detail=str(e)))
            return

        if data is None:
            await self._send_error(connection_id, InvalidMessage(detail="Message must be a JSON object"))
            return

        try:
            await self.handle_message(connection_id, data)
        except Exception as e:
            logger.exception(f"Error handling message from {connection_id}: {e}")
            await self._send_error(
                connection_id, RelayError(message="Message handling error", detail=str(e))
            )

    async def handle_message(self, connection_id: str, data: Dict[str, Any]) -> None:
        record = self.registry.get(connection_id)
        if record is None:
            logger.debug(f"Dropping message for unknown connection {connection_id}")
            return

        self.registry.touch(connection_id)
        message_type = data.get("type")
        handlers = self._client_handlers if record.role == ConnectionRole.CLIENT else self._worker_handlers
        handler = handlers.get(message_type)

        logger.debug(f"Processing message: type={message_type}, connection={connection_id}")

        if handler is None:
            logger.warning(f"Unknown message type from {record.role.value} {connection_id}: {message_type}")
            await self._send_error(
                connection_id, UnknownMessageType(detail=f"Unknown message type: {message_type}")
            )
            return

        if record.role == ConnectionRole.WORKER and not record.is_registered and message_type not in (
            WorkerMessages.REGISTER, WorkerMessages.HEARTBEAT, WorkerMessages.PING
        ):
            logger.warning(f"Worker {connection_id} sent '{message_type}' before registering")

        if record.role == ConnectionRole.CLIENT and record.state == ConnectionState.CONNECTING:
            self.registry.set_state(connection_id, ConnectionState.ACTIVE)

        try:
            await handler(record, data)
        except ValidationError as e:
            logger.warning(f"Invalid '{message_type}' payload from {connection_id}: {e}")
            await self._send_error(connection_id, InvalidMessage(detail=str(e)))
        except RelayError as e:
            logger.warning(f"Rejected '{message_type}' from {connection_id}: {e.code}: {e.message}")
            await self._send_error(connection_id, e)

    # ==================== Client messages ====================

    async def _handle_connect(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = ConnectPayload.model_validate(data)
        self.registry.bind_model(record.connection_id, payload.model)

        await self.send_to(
            record.connection_id,
            create_message(
                BrokerToClientMessages.CONNECTION_ACK,
                clientId=record.connection_id,
                workerPoolSize=self.worker_pool_size(),
                model=record.bound_model,
            ),
        )

    async def _handle_submit_request(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = SubmitRequestPayload.model_validate(data)
        content = payload.content or ""
        if not content.strip():
            raise EmptyContent()

        request_id = payload.request_id or str(uuid.uuid4())
        if request_id in self.pending:
            raise DuplicateRequest(detail=f"Request {request_id} is already pending")

        model = payload.model or record.bound_model or self.settings.default_model
        logger.info(f"Processing request {request_id} for client {record.connection_id}, model: {model}")
        logger.debug(f"Content preview: {preview(content)}")

        await self.send_to(
            record.connection_id,
            create_message(BrokerToClientMessages.PROCESSING_STARTED, requestId=request_id),
        )

        try:
            await self.dispatch(content, model, payload.options, request_id, record.connection_id)
        except NoWorkerAvailable as e:
            await self._fail_request(record.connection_id, request_id, e)

    async def dispatch(
        self,
        content: str,
        model: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        request_id: Optional[str] = None,
        client_connection_id: Optional[str] = None,
    ) -> PendingRequest:
        """Select a worker, claim a pending entry and send it the request.

        Without ``client_connection_id`` the outcome is only delivered through
        the returned entry's ``outcome`` future.

        Raises:
            NoWorkerAvailable: no open worker, or the chosen one closed before dispatch.
            DuplicateRequest: ``request_id`` is already pending.
        """
        request_id = request_id or str(uuid.uuid4())
        model = model or self.settings.default_model

        worker_id = self.selector.select_worker(model)
        if worker_id is None:
            raise NoWorkerAvailable()

        entry = self.pending.claim(
            request_id,
            client_connection_id,
            self.settings.request_timeout,
            worker_connection_id=worker_id,
            model=model,
            content_preview=preview(content, self.settings.preview_length),
        )

        wire_options = self.settings.generation_options.to_wire()
        wire_options.update(options or {})

        sent = await self.send_to(
            worker_id,
            create_message(
                BrokerToWorkerMessages.DISPATCH_REQUEST,
                correlationId=entry.request_id,
                content=content,
                model=model,
                options=wire_options,
            ),
        )
        if not sent:
            # Worker closed between selection and dispatch
            error = NoWorkerAvailable(detail="Selected worker disconnected before dispatch")
            self.pending.resolve_entry(request_id, error)
            raise error

        logger.info(f"Dispatched request {request_id} to worker {worker_id}")
        return entry

    # ==================== Worker messages ====================

    async def _handle_register(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = RegisterPayload.model_validate(data)
        worker_id = payload.worker_id or record.connection_id

        returning = [
            other for other in self.registry.list_by_role(ConnectionRole.WORKER)
            if other.worker_id == worker_id and other.connection_id != record.connection_id
        ]
        if returning:
            logger.info(f"Worker {worker_id} re-registered while an older connection is still tracked")

        self.registry.set_worker_id(record.connection_id, worker_id)
        self.registry.set_capabilities(
            record.connection_id,
            WorkerCapabilities(models=payload.capabilities, default_model=payload.default_model),
        )
        self.registry.set_state(record.connection_id, ConnectionState.REGISTERED)

        logger.info(
            f"Worker {worker_id} registered on {record.connection_id} with models: {payload.capabilities} "
            f"(default: {payload.default_model})"
        )

        await self.send_to(
            record.connection_id,
            create_message(
                BrokerToWorkerMessages.REGISTER_ACK,
                workerId=worker_id,
                connectionId=record.connection_id,
            ),
        )
        self.registry.set_state(record.connection_id, ConnectionState.ACTIVE)

    async def _handle_worker_result(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = WorkerResultPayload.model_validate(data)
        if not self._owns_request(record, payload.correlation_id):
            return
        entry = self.pending.resolve_entry(
            payload.correlation_id,
            WorkerReply(success=True, content=payload.content, model=payload.model),
        )
        if entry is None:
            logger.warning(
                f"Discarding result for unknown or expired request {payload.correlation_id} "
                f"from worker {record.connection_id}"
            )
            return

        logger.info(f"Request {entry.request_id} completed by worker {record.connection_id}")
        await self._deliver(
            entry,
            create_message(
                BrokerToClientMessages.REQUEST_COMPLETED,
                requestId=entry.request_id,
                content=payload.content,
                model=payload.model or entry.model,
                originalPreview=entry.content_preview,
            ),
        )

    async def _handle_worker_error(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = WorkerErrorPayload.model_validate(data)
        if not self._owns_request(record, payload.correlation_id):
            return
        detail = payload.error or "Worker reported an error without details"
        entry = self.pending.resolve_entry(
            payload.correlation_id,
            WorkerReply(success=False, error=detail),
        )
        if entry is None:
            logger.warning(
                f"Discarding error for unknown or expired request {payload.correlation_id} "
                f"from worker {record.connection_id}"
            )
            return

        logger.error(f"Request {entry.request_id} failed on worker {record.connection_id}: {detail}")
        error = GenerationError(detail=detail)
        await self._deliver(
            entry,
            create_message(
                BrokerToClientMessages.REQUEST_FAILED,
                requestId=entry.request_id,
                **error.to_payload(),
            ),
        )

    async def _handle_worker_status(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = WorkerStatusPayload.model_validate(data)
        logger.debug(
            f"Worker {record.connection_id} status for request {payload.correlation_id}: {payload.status}"
        )

    async def _handle_worker_disconnect(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        payload = DisconnectPayload.model_validate(data)
        self.registry.clear_capabilities(record.connection_id)
        logger.info(f"Worker {payload.worker_id or record.connection_id} disconnecting gracefully")

    # ==================== Shared messages ====================

    async def _handle_heartbeat(self, record: ConnectionRecord, data: Dict[str, Any]) -> None:
        await self.send_to(record.connection_id, create_message(BrokerToClientMessages.HEARTBEAT_ACK))

    # ==================== Outbound helpers ====================

    async def send_to(self, connection_id: str, message: Dict[str, Any]) -> bool:
        """Send to a tracked connection; False if it is gone or closed."""
        record = self.registry.get(connection_id)
        if record is None or is_websocket_closed(record.websocket):
            logger.debug(f"Connection {connection_id} is gone, dropping '{message.get('type')}'")
            return False
        return await send_websocket_message(record.websocket, message)

    def worker_pool_size(self) -> int:
        return len(self.selector.get_available_workers())

    def _owns_request(self, record: ConnectionRecord, correlation_id: str) -> bool:
        """A reply is only accepted from the worker the request was dispatched to."""
        entry = self.pending.get(correlation_id)
        if entry is None or entry.worker_connection_id in (None, record.connection_id):
            return True
        logger.warning(
            f"Ignoring reply for request {correlation_id} from worker {record.connection_id}; "
            f"it was dispatched to {entry.worker_connection_id}"
        )
        return False

    async def _deliver(self, entry: PendingRequest, message: Dict[str, Any]) -> None:
        if entry.client_connection_id is None:
            return
        if not await self.send_to(entry.client_connection_id, message):
            error = ConnectionLost(detail=f"Client {entry.client_connection_id} left")
            logger.info(f"Dropping reply for request {entry.request_id}: {error.code}: {error.detail}")

    async def _fail_request(self, client_connection_id: str, request_id: str, error: RelayError) -> None:
        await self.send_to(
            client_connection_id,
            create_message(
                BrokerToClientMessages.REQUEST_FAILED,
                requestId=request_id,
                **error.to_payload(),
            ),
        )

    async def _send_error(self, connection_id: str, error: RelayError) -> None:
        await self.send_to(
            connection_id,
            create_message(BrokerToClientMessages.ERROR, **error.to_payload()),
        )

    async def _on_request_timeout(self, entry: PendingRequest) -> None:
        if entry.client_connection_id is None:
            return
        await self._fail_request(
            entry.client_connection_id,
            entry.request_id,
            RequestTimeout(detail=f"No worker reply within {self.settings.request_timeout:g}s"),
        )
