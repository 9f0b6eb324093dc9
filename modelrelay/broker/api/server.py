"""FastAPI status surface and HTTP submission route for the broker."""

import asyncio
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from modelrelay.exceptions import (
    EmptyContent,
    GenerationError,
    NoWorkerAvailable,
    RelayError,
    RequestTimeout,
)
from modelrelay.logger import logger
from ..core.broker import Broker
from ..storage.models import ConnectionRecord, ConnectionRole, WorkerReply
from .models import (
    ConnectionResponse,
    ErrorResponse,
    HealthCheckResponse,
    ProcessClipboardRequest,
    ProcessClipboardResponse,
    StatusResponse,
    WsStatsResponse,
)


def _connection_response(record: ConnectionRecord) -> ConnectionResponse:
    capabilities = record.capabilities
    return ConnectionResponse(
        id=record.connection_id,
        role=record.role.value,
        state=record.state.value,
        remote_address=record.remote_address,
        connected_at=record.connected_at,
        last_activity_at=record.last_activity_at,
        message_count=record.message_count,
        worker_id=record.worker_id,
        capabilities=capabilities.models if capabilities else None,
        default_model=capabilities.default_model if capabilities else None,
        bound_model=record.bound_model if record.role == ConnectionRole.CLIENT else None,
    )


def _error_response(status_code: int, error: RelayError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=error.message,
            code=error.code,
            detail=error.detail,
        ).model_dump(mode="json"),
    )


class APIServer:
    """HTTP status surface sharing the broker's event loop."""

    def __init__(self, broker: Broker):
        self.broker = broker
        self.app = FastAPI(
            title="ModelRelay Broker API",
            description="Health, status and request submission endpoints for the ModelRelay broker",
            version="0.1.0",
            docs_url="/docs",
            redoc_url="/redoc",
        )
        self._server = None

        # Add CORS middleware
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        self._register_routes()
        self._register_exception_handlers()

    def _register_exception_handlers(self):
        """Register custom exception handlers."""

        @self.app.exception_handler(Exception)
        async def general_exception_handler(request, exc):
            logger.error(f"API error: {exc}")
            return JSONResponse(
                status_code=500,
                content=ErrorResponse(
                    error="Internal server error",
                    detail=str(exc)
                ).model_dump(mode="json")
            )

    def _register_routes(self):
        """Register all API routes."""

        @self.app.get("/health", response_model=HealthCheckResponse)
        async def health_check():
            return HealthCheckResponse()

        @self.app.get("/status", response_model=StatusResponse)
        async def get_status():
            """Pool sizes and worker connectivity."""
            stats = self.broker.get_system_stats()
            return StatusResponse(
                workers=stats["available_workers"],
                clients=stats["connections"]["clients"],
                pending_requests=stats["pending_requests"],
                worker_connectivity=stats["worker_connectivity"],
                available_models=stats["available_models"],
            )

        @self.app.get("/ws-stats", response_model=WsStatsResponse)
        async def get_ws_stats():
            """Every tracked client and worker connection."""
            return WsStatsResponse(
                clients=[_connection_response(r) for r in self.broker.list_clients()],
                workers=[_connection_response(r) for r in self.broker.list_workers()],
                available_workers=self.broker.handler.worker_pool_size(),
                pending_requests=len(self.broker.pending),
            )

        @self.app.post("/process-clipboard", response_model=ProcessClipboardResponse)
        async def process_clipboard(request: ProcessClipboardRequest):
            """Relay one request to a worker and wait for its reply."""
            content = request.content or ""
            if not content.strip():
                return _error_response(400, EmptyContent())

            try:
                entry = await self.broker.handler.dispatch(content, request.model, request.options)
            except NoWorkerAvailable as e:
                return _error_response(503, e)

            logger.info(f"HTTP request {entry.request_id} dispatched (model: {entry.model})")
            # A dropped HTTP caller must not cancel the shared outcome
            outcome = await asyncio.shield(entry.outcome)

            if isinstance(outcome, WorkerReply) and outcome.success:
                return ProcessClipboardResponse(
                    request_id=entry.request_id,
                    ai_code=outcome.content,
                    model=outcome.model or entry.model,
                    original_content=entry.content_preview,
                )
            if isinstance(outcome, WorkerReply):
                return _error_response(502, GenerationError(detail=outcome.error))
            if isinstance(outcome, RequestTimeout):
                return _error_response(504, outcome)
            return _error_response(503, outcome)

    async def start(self, host: Optional[str] = None, port: Optional[int] = None):
        """Serve the API until ``stop`` is called."""
        import uvicorn

        host = host or self.broker.settings.host
        port = port if port is not None else self.broker.settings.api_port

        config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level="warning",
        )
        self._server = uvicorn.Server(config)

        logger.info(f"Starting status API on http://{host}:{port}")
        await self._server.serve()

    async def stop(self):
        """Ask the running uvicorn server to exit."""
        if self._server is not None:
            self._server.should_exit = True
            logger.info("Status API stopping")
