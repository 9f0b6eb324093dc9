"""FastAPI health and status surface for a worker."""

import asyncio
from typing import Optional

import aiohttp
from fastapi import FastAPI
from fastapi.responses import JSONResponse

from modelrelay.logger import logger
from ..agent import WorkerAgent
from .models import WorkerHealthResponse, WorkerStatusResponse


class WorkerAPIServer:
    """Reports the agent's broker connection and the local Ollama's reachability."""

    def __init__(self, agent: WorkerAgent):
        self.agent = agent
        self.app = FastAPI(
            title="ModelRelay Worker API",
            description="Health and status endpoints for a ModelRelay worker",
            version="0.1.0",
        )
        self._server = None
        self._register_routes()

    def _register_routes(self):
        """Register all API routes."""

        @self.app.get("/health", response_model=WorkerHealthResponse)
        async def health_check():
            """Healthy only while the local Ollama answers."""
            agent = self.agent
            health = WorkerHealthResponse(
                broker_connection="connected" if agent.connected else "disconnected",
                worker_id=agent.worker_id,
                available_models=agent.settings.capabilities,
            )
            try:
                health.installed_models = await agent.generator.list_models()
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.warning(f"Ollama health check failed: {e}")
                health.status = "unhealthy"
                health.ollama = "disconnected"
                health.error = str(e) or type(e).__name__
                return JSONResponse(
                    status_code=503,
                    content=health.model_dump(mode="json", by_alias=True),
                )
            return health

        @self.app.get("/status", response_model=WorkerStatusResponse)
        async def get_status():
            status = self.agent.get_status()
            return WorkerStatusResponse(
                worker_id=status["workerId"],
                state=status["state"],
                broker_connection=status["brokerConnection"],
                broker_url=self.agent.settings.endpoint,
                connection_id=status["connectionId"],
                reconnect_attempts=status["attempts"],
                pending_requests=status["pendingRequests"],
                available_models=self.agent.settings.capabilities,
                default_model=self.agent.settings.default_model,
            )

    async def start(self, host: Optional[str] = None, port: Optional[int] = None):
        """Serve the API until ``stop`` is called."""
        import uvicorn

        host = host or self.agent.settings.api_host
        port = port if port is not None else self.agent.settings.api_port

        config = uvicorn.Config(
            app=self.app,
            host=host,
            port=port,
            log_level="warning",
        )
        self._server = uvicorn.Server(config)

        logger.info(f"Starting worker API on http://{host}:{port}")
        await self._server.serve()

    async def stop(self):
        """Ask the running uvicorn server to exit."""
        if self._server is not None:
            self._server.should_exit = True
            logger.info("Worker API stopping")
