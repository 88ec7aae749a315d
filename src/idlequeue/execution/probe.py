"""Idle Probe: two-tick confirmation before releasing deferred work.

WHY
───
The usage count can read zero for a moment between two causally linked
operations (I/O, then CPU, then I/O again).  Releasing deferred work on a
single zero reading would fire in that gap.  The probe therefore wants two
idle observations, one tick apart, before it resolves anything.

ARCHITECTURE
────────────
::

    trigger()            queue non-empty and nothing in flight
      │  in_flight = True
      ▼  call_soon
    _first_check()       queue empty or busy → stop
      │
      ▼  call_soon
    _second_check()      busy → stop
      │  resolve_oldest()
      │  in_flight = False
      ▼
    trigger()            drains the next request in a fresh window

At most one request is released per confirmed-idle window, which gives the
continuation of each released request a chance to take a lock before the
next one is let go.  A stopped probe is restarted by the next ``unlock()``
or ``request_idle_promise()``.
"""

from __future__ import annotations

from collections.abc import Callable

from idlequeue.core.logging import get_logger
from idlequeue.execution.deferred import DeferredQueue
from idlequeue.execution.scheduler import Cancellable, TickScheduler


class IdleProbe:
    """Serialized two-tick idle confirmation for one :class:`DeferredQueue`."""

    def __init__(
        self,
        scheduler: TickScheduler,
        is_idle: Callable[[], bool],
        queue: DeferredQueue,
    ) -> None:
        self._scheduler = scheduler
        self._is_idle = is_idle
        self._queue = queue
        self._log = get_logger(__name__, queue=queue.name)
        self._in_flight = False
        self._tick: Cancellable | None = None

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def trigger(self) -> None:
        """Start a probe sequence unless one is running or nothing is queued."""
        if self._in_flight or not self._queue:
            return
        self._in_flight = True
        self._tick = self._scheduler.call_soon(self._first_check)

    def reset(self) -> None:
        """Abandon the running sequence, if any."""
        if self._tick is not None:
            self._tick.cancel()
            self._tick = None
        self._in_flight = False

    def _first_check(self) -> None:
        self._tick = None
        if not self._queue:
            self._stop("queue_empty")
            return
        if not self._is_idle():
            self._stop("busy")
            return
        self._tick = self._scheduler.call_soon(self._second_check)

    def _second_check(self) -> None:
        self._tick = None
        if not self._is_idle():
            self._stop("busy")
            return

        self._queue.resolve_oldest()
        self._in_flight = False
        self.trigger()

    def _stop(self, reason: str) -> None:
        self._in_flight = False
        self._log.debug("idle_queue.probe_aborted", reason=reason, pending=len(self._queue))


__all__ = ["IdleProbe"]
