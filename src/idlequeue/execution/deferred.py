"""Deferred Queue: insertion-ordered pending idle requests.

WHY
───
Work registered through ``request_idle_promise()`` must run oldest-first,
one item per confirmed-idle window, while any single item can leave the
queue early (own deadline, explicit cancel, ``clear()``).  A dict keyed by
the insertion sequence gives FIFO iteration and O(1) removal.

ARCHITECTURE
────────────
::

    DeferredQueue(scheduler, default_timeout_ms=None, name=None)
      ├── .request(timeout)    ─ create + enqueue, arm deadline, notify
      ├── .resolve_oldest()    ─ idle path (called by IdleProbe)
      ├── .expire(request)     ─ deadline path (called by TimeoutGuard)
      ├── .cancel(value)       ─ never raises, unknown values ignored
      └── .cancel_all()        ─ used by IdleQueue.clear()

    Every exit path goes through ``_detach``:
      pop from queue → disarm timer → notify detach listeners (handles)

Settling or cancelling a request that is already terminal is a no-op, so an
idle resolution and a deadline firing in the same tick resolve it once.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterator
from typing import Any

from idlequeue.core.logging import get_logger
from idlequeue.execution.requests import IdleRequest, RequestState, ResolvedBy
from idlequeue.execution.scheduler import TickScheduler
from idlequeue.execution.timeout import TimeoutGuard, validate_timeout

DetachListener = Callable[[IdleRequest], None]


class DeferredQueue:
    """FIFO collection of pending :class:`IdleRequest` objects.

    Parameters
    ----------
    scheduler : TickScheduler
        Source of futures and deadline timers.
    on_enqueue : Callable[[], None] | None
        Called after each new request is queued (the probe trigger).
    default_timeout_ms : float | None
        Deadline for requests created without an explicit timeout.
    name : str | None
        Owning queue name, attached to log events.
    """

    def __init__(
        self,
        scheduler: TickScheduler,
        on_enqueue: Callable[[], None] | None = None,
        default_timeout_ms: float | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name
        self._log = get_logger(__name__, queue=name)
        self._scheduler = scheduler
        self._on_enqueue = on_enqueue
        self._default_timeout_ms = validate_timeout(default_timeout_ms)
        self._guard = TimeoutGuard(scheduler)
        self._pending: dict[int, IdleRequest] = {}
        self._last_sequence = 0
        self._detach_listeners: list[DetachListener] = []

    def add_detach_listener(self, listener: DetachListener) -> None:
        """Register ``listener`` to run whenever a request leaves the queue."""
        self._detach_listeners.append(listener)

    # ── Queue contents ───────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._pending)

    def __iter__(self) -> Iterator[IdleRequest]:
        return iter(list(self._pending.values()))

    def __contains__(self, value: object) -> bool:
        return isinstance(value, IdleRequest) and self._pending.get(value.sequence) is value

    def oldest(self) -> IdleRequest | None:
        return next(iter(self._pending.values()), None)

    # ── Creation ─────────────────────────────────────────────────────

    def request(self, timeout: float | None = None) -> IdleRequest:
        """Queue a new request and return it.

        Args:
            timeout: Milliseconds after which the request resolves even if the
                resource never becomes idle. ``None`` uses the queue default.

        Raises:
            InvalidTimeoutError: If ``timeout`` is not a positive number.
        """
        timeout_ms = validate_timeout(timeout)
        if timeout_ms is None:
            timeout_ms = self._default_timeout_ms

        self._last_sequence += 1
        request = IdleRequest(
            sequence=self._last_sequence,
            future=self._scheduler.create_future(),
            timeout_ms=timeout_ms,
        )
        request.add_done_callback(lambda fut: self._on_future_done(request, fut))
        self._pending[request.sequence] = request
        self._guard.arm(request, self.expire)

        self._log.debug("idle_queue.request_created", sequence=request.sequence, timeout_ms=timeout_ms)

        if self._on_enqueue is not None:
            self._on_enqueue()
        return request

    # ── Resolution ───────────────────────────────────────────────────

    def resolve_oldest(self) -> IdleRequest | None:
        """Resolve the pending request with the smallest sequence, if any."""
        request = self.oldest()
        if request is None:
            return None
        self._settle(request, ResolvedBy.IDLE)
        return request

    def expire(self, request: IdleRequest) -> None:
        """Force-resolve ``request`` because its deadline elapsed."""
        self._settle(request, ResolvedBy.TIMEOUT)

    def _settle(self, request: IdleRequest, resolved_by: ResolvedBy) -> bool:
        if not request.transition_to(RequestState.RESOLVED):
            return False
        request.resolved_by = resolved_by
        self._detach(request)
        if not request.future.done():
            request.future.set_result(None)
        self._log.debug(
            "idle_queue.request_resolved",
            sequence=request.sequence,
            resolved_by=resolved_by.value,
            waited_ms=round((time.monotonic() - request.created_at) * 1000, 3),
            remaining=len(self._pending),
        )
        return True

    # ── Cancellation ─────────────────────────────────────────────────

    def cancel(self, value: Any) -> bool:
        """Remove ``value`` from the queue so it never resolves.

        Unknown, terminal, foreign and non-request values are ignored.

        Returns:
            True if a pending request of this queue was cancelled.
        """
        if value not in self:
            return False
        value.transition_to(RequestState.CANCELLED)
        self._detach(value)
        self._log.debug("idle_queue.request_cancelled", sequence=value.sequence)
        return True

    def cancel_all(self) -> int:
        """Cancel every pending request. Returns how many were cancelled."""
        return sum(1 for request in self if self.cancel(request))

    def _detach(self, request: IdleRequest) -> None:
        self._pending.pop(request.sequence, None)
        self._guard.disarm(request)
        for listener in self._detach_listeners:
            listener(request)

    def _on_future_done(self, request: IdleRequest, fut: asyncio.Future[None]) -> None:
        # An awaiting task was cancelled and took the shared future with it.
        if fut.cancelled() and request.is_pending:
            self.cancel(request)

    def __repr__(self) -> str:
        return f"DeferredQueue(pending={len(self._pending)})"


__all__ = ["DeferredQueue", "DetachListener"]
