"""WebSocket server accepting client and worker connections."""

from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from modelrelay.logger import logger
from modelrelay.ws.utils import close_websocket_safely, get_remote_address, get_request_path
from ..core.broker import Broker
from ..storage.models import ConnectionRole


class BrokerServer:
    """WebSocket endpoint for the broker.

    The connection role is decided once from the request path: the worker
    path (and its legacy aliases) admits workers, the client paths admit
    clients, and anything else is refused with a policy-violation close.
    """

    def __init__(
        self,
        broker: Broker,
        host: Optional[str] = None,
        port: Optional[int] = None,
    ):
        self.broker = broker
        self.host = host if host is not None else broker.settings.host
        self.port = port if port is not None else broker.settings.port
        self.running = False
        self.server = None

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port (useful when started with port 0)."""
        if not self.server or not self.server.sockets:
            return None
        return self.server.sockets[0].getsockname()[1]

    async def start(self):
        """Start the websocket server."""
        if self.running:
            logger.warning("Broker server is already running")
            return

        logger.info(f"Starting broker server on {self.host}:{self.port}")

        self.server = await websockets.serve(
            self.handle_connection,
            self.host,
            self.port,
            ping_interval=20,
            ping_timeout=20,
        )

        self.running = True
        settings = self.broker.settings
        logger.info(f"Broker server started on ws://{self.host}:{self.bound_port}")
        logger.info(f"Client endpoints: {', '.join(settings.client_paths)}")
        logger.info(f"Worker endpoints: {', '.join([settings.worker_path] + settings.legacy_worker_paths)}")

    async def stop(self):
        """Stop the websocket server."""
        if not self.running:
            return

        logger.info("Stopping broker server...")
        self.running = False

        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None

        logger.info("Broker server stopped")

    def resolve_role(self, path: str) -> Optional[ConnectionRole]:
        """Map a request path to a connection role; None when the path is unknown."""
        settings = self.broker.settings
        normalized = path.rstrip("/") or "/"

        worker_paths = [settings.worker_path] + list(settings.legacy_worker_paths)
        if normalized in (p.rstrip("/") or "/" for p in worker_paths):
            return ConnectionRole.WORKER
        if normalized in (p.rstrip("/") or "/" for p in settings.client_paths):
            return ConnectionRole.CLIENT
        return None

    async def handle_connection(self, websocket: Any):
        """Serve one accepted socket until it closes."""
        path = get_request_path(websocket)
        remote_address = get_remote_address(websocket)
        role = self.resolve_role(path)

        if role is None:
            logger.warning(f"Rejecting connection from {remote_address} on unknown path {path}")
            await close_websocket_safely(websocket, 1008, "Unknown endpoint")
            return

        handler = self.broker.handler
        connection_id = await handler.on_connect(websocket, role, remote_address)

        try:
            async for raw in websocket:
                await handler.handle_raw(connection_id, raw)
        except ConnectionClosed as e:
            logger.info(f"{role.value.capitalize()} connection {connection_id} closed: {e}")
        except WebSocketException as e:
            logger.error(f"WebSocket error on {role.value} connection {connection_id}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error on {role.value} connection {connection_id}: {e}")
        finally:
            await handler.on_disconnect(connection_id)
