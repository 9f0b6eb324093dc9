"""Pending request table correlating worker replies with waiting clients."""

import asyncio
import inspect
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set

from modelrelay.exceptions import ConnectionLost, DuplicateRequest, RequestTimeout
from modelrelay.logger import logger
from ..storage.models import PendingRequest


TimeoutCallback = Callable[[PendingRequest], Any]


class PendingRequestTable:
    """In-flight requests keyed by correlation id.

    All mutation happens synchronously on the event loop thread, so a claim
    and its single resolution never interleave with another operation on the
    same id. Whichever of the timeout and the worker reply reaches
    ``resolve_entry`` first wins; the other observes ``None``.
    """

    def __init__(self, on_timeout: Optional[TimeoutCallback] = None):
        self._entries: Dict[str, PendingRequest] = {}
        self._on_timeout = on_timeout
        self._callback_tasks: Set[asyncio.Task] = set()

    def set_timeout_callback(self, callback: Optional[TimeoutCallback]) -> None:
        self._on_timeout = callback

    def claim(
        self,
        request_id: str,
        client_connection_id: Optional[str],
        timeout: float,
        worker_connection_id: Optional[str] = None,
        model: Optional[str] = None,
        content_preview: str = "",
    ) -> PendingRequest:
        """Insert an entry and arm its timeout.

        Raises:
            DuplicateRequest: ``request_id`` is already pending.
        """
        if request_id in self._entries:
            raise DuplicateRequest(detail=f"Request {request_id} is already pending")

        loop = asyncio.get_running_loop()
        now = datetime.now()
        entry = PendingRequest(
            request_id=request_id,
            client_connection_id=client_connection_id,
            worker_connection_id=worker_connection_id,
            model=model,
            content_preview=content_preview,
            created_at=now,
            deadline=now + timedelta(seconds=timeout),
            outcome=loop.create_future(),
        )
        entry.timer = loop.call_later(timeout, self._expire, request_id)
        self._entries[request_id] = entry

        logger.debug(f"Claimed request {request_id} for client {client_connection_id} ({timeout}s)")
        return entry

    def resolve_entry(self, request_id: str, outcome: Any) -> Optional[PendingRequest]:
        """Remove the entry and complete it with ``outcome``; None if already resolved."""
        entry = self._entries.pop(request_id, None)
        if entry is None:
            return None

        if entry.timer is not None:
            entry.timer.cancel()
        if entry.outcome is not None and not entry.outcome.done():
            entry.outcome.set_result(outcome)
        return entry

    def resolve(self, request_id: str, outcome: Any) -> Optional[str]:
        """Resolve a request and return the client connection id that awaits it."""
        entry = self.resolve_entry(request_id, outcome)
        return entry.client_connection_id if entry else None

    def get(self, request_id: str) -> Optional[PendingRequest]:
        return self._entries.get(request_id)

    def list_pending(self) -> List[PendingRequest]:
        return list(self._entries.values())

    def count_for_worker(self, worker_connection_id: str) -> int:
        return sum(1 for e in self._entries.values() if e.worker_connection_id == worker_connection_id)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, request_id: str) -> bool:
        return request_id in self._entries

    async def close(self) -> None:
        """Cancel all timers and drop every entry without notifying clients.

        Outcomes still being awaited complete with ``ConnectionLost``.
        """
        for request_id in list(self._entries):
            self.resolve_entry(request_id, ConnectionLost(detail="Broker shutting down"))

        for task in list(self._callback_tasks):
            task.cancel()
        if self._callback_tasks:
            await asyncio.gather(*self._callback_tasks, return_exceptions=True)
        self._callback_tasks.clear()

    def _expire(self, request_id: str) -> None:
        entry = self.resolve_entry(
            request_id,
            RequestTimeout(detail=f"No worker reply for request {request_id}"),
        )
        if entry is None:
            return

        logger.warning(f"Request {request_id} timed out waiting for a worker reply")
        if self._on_timeout is None:
            return

        try:
            result = self._on_timeout(entry)
        except Exception as e:
            logger.error(f"Timeout callback failed for request {request_id}: {e}")
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callback_tasks.add(task)
            task.add_done_callback(self._callback_tasks.discard)
