"""Unit tests for PendingRequestTable."""

import asyncio

import pytest

from modelrelay.broker.core.pending import PendingRequestTable
from modelrelay.broker.storage.models import WorkerReply
from modelrelay.exceptions import ConnectionLost, DuplicateRequest, RequestTimeout
from tests.broker.fixtures.helpers import wait_for_condition


@pytest.mark.unit
class TestPendingRequestTable:
    """Test cases for PendingRequestTable."""

    # ==================== Claim Tests ====================

    @pytest.mark.asyncio
    async def test_claim(self, pending: PendingRequestTable):
        """Test claiming a request id."""
        entry = pending.claim("req-1", "client-1", 5.0, worker_connection_id="worker-1", model="qwen-coder")

        assert "req-1" in pending
        assert len(pending) == 1
        assert entry.client_connection_id == "client-1"
        assert entry.deadline > entry.created_at
        assert not entry.done

    @pytest.mark.asyncio
    async def test_claim_duplicate(self, pending: PendingRequestTable):
        """Test claiming an id that is already pending."""
        pending.claim("req-1", "client-1", 5.0)

        with pytest.raises(DuplicateRequest):
            pending.claim("req-1", "client-2", 5.0)

        assert pending.get("req-1").client_connection_id == "client-1"

    @pytest.mark.asyncio
    async def test_claim_after_resolve(self, pending: PendingRequestTable):
        """Test an id can be reused once resolved."""
        pending.claim("req-1", "client-1", 5.0)
        pending.resolve("req-1", WorkerReply(success=True))

        pending.claim("req-1", "client-2", 5.0)

        assert pending.get("req-1").client_connection_id == "client-2"

    # ==================== Resolve Tests ====================

    @pytest.mark.asyncio
    async def test_resolve_once(self, pending: PendingRequestTable):
        """Test a request resolves at most once."""
        entry = pending.claim("req-1", "client-1", 5.0)
        reply = WorkerReply(success=True, content="x")

        assert pending.resolve("req-1", reply) == "client-1"
        assert pending.resolve("req-1", reply) is None
        assert entry.done
        assert entry.outcome.result() is reply
        assert len(pending) == 0

    @pytest.mark.asyncio
    async def test_resolve_unknown(self, pending: PendingRequestTable):
        """Test resolving an id that was never claimed."""
        assert pending.resolve("missing", WorkerReply(success=True)) is None

    @pytest.mark.asyncio
    async def test_resolve_cancels_timer(self, pending: PendingRequestTable):
        """Test a resolved request never times out."""
        timeouts = []
        pending.set_timeout_callback(timeouts.append)
        pending.claim("req-1", "client-1", 0.05)

        pending.resolve("req-1", WorkerReply(success=True))
        await asyncio.sleep(0.1)

        assert timeouts == []

    @pytest.mark.asyncio
    async def test_count_for_worker(self, pending: PendingRequestTable):
        """Test in-flight counts per worker."""
        pending.claim("req-1", "client-1", 5.0, worker_connection_id="w1")
        pending.claim("req-2", "client-1", 5.0, worker_connection_id="w1")
        pending.claim("req-3", "client-1", 5.0, worker_connection_id="w2")

        assert pending.count_for_worker("w1") == 2
        assert pending.count_for_worker("w2") == 1
        assert pending.count_for_worker("w3") == 0

    # ==================== Timeout Tests ====================

    @pytest.mark.asyncio
    async def test_timeout_resolves_with_request_timeout(self, pending: PendingRequestTable):
        """Test an unanswered request expires."""
        timed_out = []
        pending.set_timeout_callback(timed_out.append)
        entry = pending.claim("req-1", "client-1", 0.05)

        await wait_for_condition(lambda: timed_out, timeout=2.0)

        assert "req-1" not in pending
        assert timed_out[0] is entry
        assert isinstance(entry.outcome.result(), RequestTimeout)

    @pytest.mark.asyncio
    async def test_late_reply_after_timeout_is_ignored(self, pending: PendingRequestTable):
        """Test a reply arriving after the timeout observes nothing."""
        timed_out = []
        pending.set_timeout_callback(timed_out.append)
        pending.claim("req-1", "client-1", 0.05)

        await wait_for_condition(lambda: timed_out, timeout=2.0)

        assert pending.resolve("req-1", WorkerReply(success=True)) is None
        assert len(timed_out) == 1

    @pytest.mark.asyncio
    async def test_async_timeout_callback(self, pending: PendingRequestTable):
        """Test coroutine timeout callbacks are run."""
        notified = asyncio.Event()

        async def on_timeout(entry):
            notified.set()

        pending.set_timeout_callback(on_timeout)
        pending.claim("req-1", "client-1", 0.05)

        await asyncio.wait_for(notified.wait(), timeout=2.0)

    @pytest.mark.asyncio
    async def test_timeout_callback_error_is_contained(self, pending: PendingRequestTable):
        """Test a failing callback does not break the table."""
        def on_timeout(entry):
            raise RuntimeError("boom")

        pending.set_timeout_callback(on_timeout)
        pending.claim("req-1", "client-1", 0.05)
        await asyncio.sleep(0.1)

        assert len(pending) == 0
        pending.claim("req-2", "client-1", 5.0)
        assert "req-2" in pending

    @pytest.mark.asyncio
    async def test_close_drops_everything(self):
        """Test closing drops entries without firing timeouts."""
        timed_out = []
        table = PendingRequestTable(on_timeout=timed_out.append)
        entry = table.claim("req-1", "client-1", 0.05)

        await table.close()
        await asyncio.sleep(0.1)

        assert len(table) == 0
        assert isinstance(entry.outcome.result(), ConnectionLost)
        assert timed_out == []
