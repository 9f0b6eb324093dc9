"""Unit tests for ConnectionRegistry."""

from datetime import datetime, timedelta

import pytest

from modelrelay.broker.core.registry import ConnectionRegistry
from modelrelay.broker.storage.models import (
    ConnectionRole,
    ConnectionState,
    WorkerCapabilities,
)


@pytest.mark.unit
class TestConnectionRegistry:
    """Test cases for ConnectionRegistry."""

    # ==================== Registration Tests ====================

    def test_register_client(self, registry: ConnectionRegistry):
        """Test registering a client connection."""
        connection_id = registry.register(ConnectionRole.CLIENT, remote_address="10.0.0.1:1234")

        record = registry.get(connection_id)
        assert record is not None
        assert record.role == ConnectionRole.CLIENT
        assert record.state == ConnectionState.CONNECTING
        assert record.remote_address == "10.0.0.1:1234"
        assert registry.count(ConnectionRole.CLIENT) == 1
        assert registry.count(ConnectionRole.WORKER) == 0

    def test_register_generates_unique_ids(self, registry: ConnectionRegistry):
        """Test that every registration gets a fresh id."""
        ids = {registry.register(ConnectionRole.CLIENT) for _ in range(20)}
        assert len(ids) == 20

    def test_register_worker_with_capabilities(self, registry: ConnectionRegistry):
        """Test registering a worker with capabilities up front."""
        connection_id = registry.register(
            ConnectionRole.WORKER, capabilities=WorkerCapabilities(models=["qwen-coder"])
        )

        record = registry.get(connection_id)
        assert record.is_registered
        assert record.registration_seq == 1

    def test_roles_are_kept_apart(self, registry: ConnectionRegistry):
        """Test that clients and workers are listed separately."""
        client_id = registry.register(ConnectionRole.CLIENT)
        worker_id = registry.register(ConnectionRole.WORKER)

        assert [r.connection_id for r in registry.list_by_role(ConnectionRole.CLIENT)] == [client_id]
        assert [r.connection_id for r in registry.list_by_role(ConnectionRole.WORKER)] == [worker_id]
        assert len(registry.list_all()) == 2

    # ==================== Removal Tests ====================

    def test_remove_is_idempotent(self, registry: ConnectionRegistry):
        """Test removing the same connection twice."""
        connection_id = registry.register(ConnectionRole.CLIENT)

        first = registry.remove(connection_id)
        second = registry.remove(connection_id)

        assert first is not None
        assert first.state == ConnectionState.CLOSED
        assert second is None
        assert registry.get(connection_id) is None

    def test_remove_unknown(self, registry: ConnectionRegistry):
        """Test removing an id that was never registered."""
        assert registry.remove("missing") is None

    # ==================== Activity Tests ====================

    def test_touch_updates_activity(self, registry: ConnectionRegistry):
        """Test that touch refreshes the activity timestamp."""
        connection_id = registry.register(ConnectionRole.CLIENT)
        record = registry.get(connection_id)
        record.last_activity_at = datetime.now() - timedelta(minutes=10)

        registry.touch(connection_id)

        assert datetime.now() - record.last_activity_at < timedelta(seconds=5)
        assert record.message_count == 1

    def test_touch_unknown_is_noop(self, registry: ConnectionRegistry):
        """Test touching an unknown id does nothing."""
        registry.touch("missing")
        assert registry.list_all() == []

    def test_find_idle(self, registry: ConnectionRegistry):
        """Test idle connections are found by last activity."""
        stale_id = registry.register(ConnectionRole.CLIENT)
        fresh_id = registry.register(ConnectionRole.WORKER)
        registry.get(stale_id).last_activity_at = datetime.now() - timedelta(seconds=600)

        idle = registry.find_idle(300)

        assert [r.connection_id for r in idle] == [stale_id]
        assert fresh_id not in [r.connection_id for r in idle]

    # ==================== Capability Tests ====================

    def test_registration_order(self, registry: ConnectionRegistry):
        """Test registration sequence follows capability registration order."""
        first = registry.register(ConnectionRole.WORKER)
        second = registry.register(ConnectionRole.WORKER)

        registry.set_capabilities(second, WorkerCapabilities(models=["a"]))
        registry.set_capabilities(first, WorkerCapabilities(models=["a"]))

        assert registry.get(second).registration_seq < registry.get(first).registration_seq

    def test_reregistration_keeps_order(self, registry: ConnectionRegistry):
        """Test updating capabilities does not move a worker to the back."""
        worker = registry.register(ConnectionRole.WORKER)
        registry.set_capabilities(worker, WorkerCapabilities(models=["a"]))
        seq = registry.get(worker).registration_seq

        registry.set_capabilities(worker, WorkerCapabilities(models=["a", "b"]))

        assert registry.get(worker).registration_seq == seq
        assert registry.get(worker).capabilities.models == ["a", "b"]

    def test_set_capabilities_rejects_clients(self, registry: ConnectionRegistry):
        """Test capabilities only apply to workers."""
        client = registry.register(ConnectionRole.CLIENT)
        assert registry.set_capabilities(client, WorkerCapabilities(models=["a"])) is False

    def test_clear_capabilities(self, registry: ConnectionRegistry):
        """Test clearing capabilities unregisters a worker without removing it."""
        worker = registry.register(ConnectionRole.WORKER, capabilities=WorkerCapabilities(models=["a"]))

        registry.clear_capabilities(worker)

        record = registry.get(worker)
        assert record is not None
        assert not record.is_registered

    def test_bind_model(self, registry: ConnectionRegistry):
        """Test binding a model to a client."""
        client = registry.register(ConnectionRole.CLIENT)
        registry.bind_model(client, "codellama")
        registry.bind_model(client, None)

        assert registry.get(client).bound_model == "codellama"

    def test_connection_stats(self, registry: ConnectionRegistry):
        """Test connection statistics."""
        registry.register(ConnectionRole.CLIENT)
        registry.register(ConnectionRole.WORKER)
        registry.register(ConnectionRole.WORKER, capabilities=WorkerCapabilities(models=["a"]))

        assert registry.get_connection_stats() == {
            "clients": 1,
            "workers": 2,
            "registered_workers": 1,
        }
