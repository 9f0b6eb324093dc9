"""Unit tests for WorkerSelector."""

import pytest

from modelrelay.broker.core.registry import ConnectionRegistry
from modelrelay.broker.core.selector import SelectionStrategy, WorkerSelector
from modelrelay.broker.storage.models import ConnectionRole, WorkerCapabilities
from tests.broker.fixtures.helpers import FakeWebSocket


def add_worker(registry: ConnectionRegistry, models, default_model=None) -> str:
    return registry.register(
        ConnectionRole.WORKER,
        FakeWebSocket("/worker"),
        capabilities=WorkerCapabilities(models=models, default_model=default_model),
    )


@pytest.mark.unit
class TestWorkerSelector:
    """Test cases for WorkerSelector."""

    def test_no_workers(self, selector: WorkerSelector):
        """Test selection with an empty pool."""
        assert selector.select_worker() is None
        assert selector.select_worker("qwen-coder") is None

    def test_first_registered_wins(self, registry: ConnectionRegistry, selector: WorkerSelector):
        """Test the earliest registered open worker is chosen."""
        w1 = add_worker(registry, ["qwen-coder"])
        add_worker(registry, ["qwen-coder"])

        assert selector.select_worker() == w1

    def test_falls_through_to_next_when_first_closes(
        self, registry: ConnectionRegistry, selector: WorkerSelector
    ):
        """Test a closed worker is skipped."""
        w1 = add_worker(registry, ["qwen-coder"])
        w2 = add_worker(registry, ["qwen-coder"])

        registry.get(w1).websocket.closed = True

        assert selector.select_worker() == w2

    def test_unregistered_workers_are_skipped(
        self, registry: ConnectionRegistry, selector: WorkerSelector
    ):
        """Test workers without capabilities are never chosen."""
        registry.register(ConnectionRole.WORKER, FakeWebSocket("/worker"))
        registered = add_worker(registry, ["qwen-coder"])

        assert selector.select_worker() == registered

    def test_model_hint_prefers_matching_worker(
        self, registry: ConnectionRegistry, selector: WorkerSelector
    ):
        """Test a worker advertising the hinted model is preferred."""
        add_worker(registry, ["codellama"])
        matching = add_worker(registry, ["qwen-coder"])

        assert selector.select_worker("qwen-coder") == matching

    def test_model_hint_matches_default_model(
        self, registry: ConnectionRegistry, selector: WorkerSelector
    ):
        """Test the advertised default model counts as supported."""
        add_worker(registry, ["codellama"])
        matching = add_worker(registry, [], default_model="qwen3:latest")

        assert selector.select_worker("qwen3:latest") == matching

    def test_unknown_model_falls_back_to_any_worker(
        self, registry: ConnectionRegistry, selector: WorkerSelector
    ):
        """Test an unmatched hint still dispatches to an open worker."""
        w1 = add_worker(registry, ["codellama"])

        assert selector.select_worker("does-not-exist") == w1

    def test_available_workers_in_registration_order(
        self, registry: ConnectionRegistry, selector: WorkerSelector
    ):
        """Test the available pool listing."""
        w1 = add_worker(registry, ["a"])
        w2 = add_worker(registry, ["b"])

        assert [w.connection_id for w in selector.get_available_workers()] == [w1, w2]

    def test_least_pending_strategy(self, registry: ConnectionRegistry):
        """Test least-pending selection with a registration-order tie-break."""
        w1 = add_worker(registry, ["a"])
        w2 = add_worker(registry, ["a"])
        w3 = add_worker(registry, ["a"])
        load = {w1: 2, w2: 1, w3: 1}

        selector = WorkerSelector(registry, SelectionStrategy.LEAST_PENDING, pending_counter=load.get)

        assert selector.select_worker("a") == w2
