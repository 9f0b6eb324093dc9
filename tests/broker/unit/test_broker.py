"""Unit tests for the Broker facade and BrokerServer routing."""

import pytest

from modelrelay.broker.core.broker import Broker
from modelrelay.broker.server.server import BrokerServer
from modelrelay.broker.storage.models import ConnectionRole
from tests.broker.fixtures.helpers import FakeWebSocket, connect_client, register_worker


@pytest.mark.unit
class TestBroker:
    """Test cases for Broker."""

    @pytest.mark.asyncio
    async def test_start_stop(self, broker: Broker):
        """Test broker lifecycle."""
        await broker.start()
        assert broker.running
        assert broker.reaper.running

        await broker.start()  # already running
        await broker.stop()

        assert not broker.running
        assert not broker.reaper.running

    @pytest.mark.asyncio
    async def test_stop_drops_pending(self, broker: Broker):
        """Test in-flight requests are dropped on shutdown."""
        await broker.start()
        await register_worker(broker.handler)
        client_id, _ = await connect_client(broker.handler)
        await broker.handler.handle_message(client_id, {"type": "submit_request", "content": "x"})
        assert len(broker.pending) == 1

        await broker.stop()

        assert len(broker.pending) == 0

    @pytest.mark.asyncio
    async def test_context_manager(self, broker_settings):
        """Test async context manager support."""
        async with Broker(broker_settings) as relay:
            assert relay.running
        assert not relay.running

    @pytest.mark.asyncio
    async def test_system_stats(self, broker: Broker):
        """Test statistics reflect connections and models."""
        stats = broker.get_system_stats()
        assert stats["worker_connectivity"] == "disconnected"
        assert stats["available_workers"] == 0

        await register_worker(broker.handler, ["qwen-coder", "codellama"])
        await register_worker(broker.handler, ["codellama", "deepseek-coder"])
        await connect_client(broker.handler)

        stats = broker.get_system_stats()
        assert stats["worker_connectivity"] == "connected"
        assert stats["available_workers"] == 2
        assert stats["connections"]["clients"] == 1
        assert stats["available_models"] == ["qwen-coder", "codellama", "deepseek-coder"]


@pytest.mark.unit
class TestBrokerServer:
    """Test cases for BrokerServer connection handling."""

    @pytest.fixture
    def server(self, broker: Broker) -> BrokerServer:
        return BrokerServer(broker)

    @pytest.mark.parametrize(
        "path,role",
        [
            ("/", ConnectionRole.CLIENT),
            ("/ws", ConnectionRole.CLIENT),
            ("/ws/", ConnectionRole.CLIENT),
            ("/worker", ConnectionRole.WORKER),
            ("/ollama", ConnectionRole.WORKER),
            ("/admin", None),
        ],
    )
    def test_resolve_role(self, server: BrokerServer, path, role):
        """Test the endpoint decides the role."""
        assert server.resolve_role(path) == role

    @pytest.mark.asyncio
    async def test_unknown_path_closed_with_policy_violation(self, server: BrokerServer):
        """Test connections on unknown paths are refused."""
        websocket = FakeWebSocket("/admin")

        await server.handle_connection(websocket)

        assert websocket.closed
        assert websocket.close_code == 1008
        assert server.broker.registry.list_all() == []

    @pytest.mark.asyncio
    async def test_connection_cleaned_up_after_close(self, server: BrokerServer):
        """Test the read loop ends in cleanup."""

        class ScriptedWebSocket(FakeWebSocket):
            def __init__(self, frames):
                super().__init__("/ws")
                self._frames = list(frames)

            def __aiter__(self):
                return self

            async def __anext__(self):
                if not self._frames:
                    raise StopAsyncIteration
                return self._frames.pop(0)

        websocket = ScriptedWebSocket(['{"type": "heartbeat"}', "not json"])

        await server.handle_connection(websocket)

        assert websocket.last("connection_ack") is not None
        assert websocket.last("heartbeat_ack") is not None
        assert websocket.last("error")["code"] == "InvalidMessage"
        assert server.broker.registry.list_all() == []
