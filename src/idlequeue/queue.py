"""IdleQueue: run low-priority work only while a resource is idle.

WHY
───
Some work (compaction, cache warm-up, index rebuilds) should only run when
nothing important is using a shared resource such as a database handle.
Callers mark the resource busy with ``lock()``/``unlock()`` (or
``wrap_call``), and register deferred work with ``request_idle_promise()``
or ``request_idle_callback()``.  Deferred work is released oldest-first, one
item per confirmed-idle window, or earlier if its own deadline passes.

ARCHITECTURE
────────────
::

    IdleQueue(parallels=1)
      ├── .lock() / .unlock() / .is_idle()      ─ UsageCounter
      ├── .wrap_call(fn)                        ─ CallWrapper
      ├── .request_idle_promise(timeout=None)   ─ DeferredQueue (+ TimeoutGuard)
      ├── .cancel_idle_promise(request)
      ├── .request_idle_callback(cb, timeout=None) ─ HandleRegistry
      ├── .cancel_idle_callback(handle)
      └── .clear()                              ─ teardown between epochs

    unlock() and request_idle_promise() both trigger the IdleProbe.

BEST PRACTICES
──────────────
- Prefer ``wrap_call`` or ``with queue.lock():`` over bare lock/unlock pairs.
- Give deferred work a ``timeout`` when it must eventually run under load.
- Call ``clear()`` only for teardown; pending awaitables never settle.

Example::

    queue = IdleQueue(parallels=1)

    async def write(row):
        await queue.wrap_call(lambda: db.insert(row))

    async def compact():
        await queue.request_idle_promise(timeout=5_000)
        await db.compact()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from itertools import count
from typing import Any, TypeVar

from idlequeue.core.logging import configure_logging, get_logger
from idlequeue.core.settings import IdleQueueSettings
from idlequeue.execution.deferred import DeferredQueue
from idlequeue.execution.handles import HandleRegistry
from idlequeue.execution.probe import IdleProbe
from idlequeue.execution.requests import IdleRequest
from idlequeue.execution.scheduler import AsyncioTickScheduler, TickScheduler
from idlequeue.execution.usage import CallWrapper, UsageCounter, UsageLease

T = TypeVar("T")

_queue_ids = count(1)


class IdleQueue:
    """Tracks usage of one resource and releases deferred work when it idles.

    Parameters
    ----------
    parallels : int
        The resource counts as idle while fewer than ``parallels`` locks
        are held.
    scheduler : TickScheduler | None
        Tick/deadline primitive. Defaults to :class:`AsyncioTickScheduler`
        on the running loop.
    unlock_policy : str
        ``"clamp"`` (default) or ``"raise"`` for unmatched ``unlock()`` calls.
    default_timeout_ms : float | None
        Deadline for requests created without one.
    name : str | None
        Label used in logs and ``repr``.
    """

    def __init__(
        self,
        parallels: int = 1,
        *,
        scheduler: TickScheduler | None = None,
        unlock_policy: str = "clamp",
        default_timeout_ms: float | None = None,
        name: str | None = None,
    ) -> None:
        self.name = name or f"idle-queue-{next(_queue_ids)}"
        self._scheduler = scheduler or AsyncioTickScheduler()
        self._log = get_logger(__name__, queue=self.name)
        self._counter = UsageCounter(
            parallels, unlock_policy, on_unlock=self._on_unlock, name=self.name
        )
        self._deferred = DeferredQueue(
            self._scheduler,
            on_enqueue=self._on_enqueue,
            default_timeout_ms=default_timeout_ms,
            name=self.name,
        )
        self._probe = IdleProbe(self._scheduler, self._counter.is_idle, self._deferred)
        self._handles = HandleRegistry(self._deferred)
        self._wrapper = CallWrapper(self._counter)

    @classmethod
    def from_settings(
        cls,
        settings: IdleQueueSettings | None = None,
        *,
        scheduler: TickScheduler | None = None,
        name: str | None = None,
    ) -> IdleQueue:
        """Build a queue from :class:`IdleQueueSettings` (env-loaded by default).

        Also applies ``log_level`` and ``log_json`` through
        :func:`configure_logging`, which is process-wide.
        """
        settings = settings or IdleQueueSettings()
        configure_logging(settings.log_level, settings.log_json)
        return cls(
            settings.parallels,
            scheduler=scheduler,
            unlock_policy=settings.unlock_policy,
            default_timeout_ms=settings.default_timeout_ms,
            name=name,
        )

    # ── Usage ────────────────────────────────────────────────────────

    @property
    def parallels(self) -> int:
        return self._counter.budget

    @property
    def count(self) -> int:
        """Number of locks currently held."""
        return self._counter.count

    def is_idle(self) -> bool:
        return self._counter.is_idle()

    def lock(self) -> UsageLease:
        """Mark the resource busy; release the returned lease exactly once."""
        return self._counter.lock()

    def unlock(self) -> None:
        self._counter.unlock()

    def wrap_call(self, fn: Callable[[], T]) -> T | asyncio.Task[Any]:
        """Run ``fn`` while holding a lock.

        Returns ``fn``'s value for sync callables; for callables returning an
        awaitable, returns a task that unlocks before completing with the same
        outcome.
        """
        return self._wrapper.wrap(fn)

    # ── Deferred work ────────────────────────────────────────────────

    @property
    def pending(self) -> int:
        """Number of requests waiting for an idle window."""
        return len(self._deferred)

    @property
    def probe_in_flight(self) -> bool:
        return self._probe.in_flight

    def request_idle_promise(self, timeout: float | None = None) -> IdleRequest:
        """Return an awaitable that resolves in the next confirmed-idle window.

        Args:
            timeout: Milliseconds after which it resolves regardless of usage.

        Raises:
            InvalidTimeoutError: If ``timeout`` is not a positive number.
        """
        return self._deferred.request(timeout)

    def cancel_idle_promise(self, request: Any) -> None:
        """Make ``request`` never resolve. Anything not pending here is ignored."""
        self._deferred.cancel(request)

    def request_idle_callback(self, callback: Callable[[], Any], timeout: float | None = None) -> int:
        """Run ``callback`` in the next confirmed-idle window; returns a handle."""
        return self._handles.request_idle_callback(callback, timeout)

    def cancel_idle_callback(self, handle: Any) -> None:
        self._handles.cancel_idle_callback(handle)

    # ── Teardown ─────────────────────────────────────────────────────

    def clear(self) -> None:
        """Cancel all pending work and reset usage.

        Awaitables and callbacks still pending never settle.  Leases taken
        before ``clear()`` become inert.
        """
        cancelled = self._deferred.cancel_all()
        self._counter.reset()
        self._handles.clear()
        self._probe.reset()
        self._log.debug("idle_queue.cleared", cancelled=cancelled)

    # ── Wiring ───────────────────────────────────────────────────────

    def _on_unlock(self) -> None:
        self._probe.trigger()

    def _on_enqueue(self) -> None:
        self._probe.trigger()

    def __repr__(self) -> str:
        return (
            f"IdleQueue(name={self.name!r}, count={self.count}, "
            f"parallels={self.parallels}, pending={self.pending})"
        )


__all__ = ["IdleQueue"]
