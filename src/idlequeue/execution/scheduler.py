"""Tick scheduler protocol.

The idle probe never sleeps on its own; it asks a ``TickScheduler`` to run a
callback "one tick later", meaning strictly after every callback that was
already queued on the host.  Deadlines and completion futures come from the
same object so the whole engine can be moved to another host by swapping a
single collaborator.

::

    IdleProbe ──call_soon()──► TickScheduler ──► run after queued work
    TimeoutGuard ─call_later()─►      │
    DeferredQueue ─create_future()─►  │
                                      ▼
                          AsyncioTickScheduler (default)
                            ├─ loop.call_soon      (FIFO ready queue)
                            ├─ loop.call_later     (timer heap)
                            └─ loop.create_future

Custom schedulers must keep the ready queue FIFO and non-starving: a callback
scheduled earlier must never run after one scheduled later.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class Cancellable(Protocol):
    """Handle returned by scheduling calls."""

    def cancel(self) -> None: ...


@runtime_checkable
class TickScheduler(Protocol):
    """Protocol for the deferred-execution primitive used by the engine.

    Example (custom scheduler over an explicit loop):
        >>> class LoopScheduler:
        ...     def __init__(self, loop):
        ...         self._loop = loop
        ...     def call_soon(self, callback):
        ...         return self._loop.call_soon(callback)
        ...     def call_later(self, delay, callback):
        ...         return self._loop.call_later(delay, callback)
        ...     def create_future(self):
        ...         return self._loop.create_future()
    """

    def call_soon(self, callback: Callable[[], Any]) -> Cancellable:
        """Run ``callback`` on the next tick."""
        ...

    def call_later(self, delay: float, callback: Callable[[], Any]) -> Cancellable:
        """Run ``callback`` after ``delay`` seconds."""
        ...

    def create_future(self) -> asyncio.Future[Any]:
        """Create an unresolved future bound to the host loop."""
        ...


class AsyncioTickScheduler:
    """Default scheduler backed by an asyncio event loop.

    Parameters
    ----------
    loop : asyncio.AbstractEventLoop | None
        Loop to schedule on.  When omitted, the running loop is looked up on
        every call, so a queue built outside a coroutine still binds to the
        loop that later uses it.
    """

    name = "asyncio"

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        return asyncio.get_running_loop()

    def call_soon(self, callback: Callable[[], Any]) -> asyncio.Handle:
        return self.loop.call_soon(callback)

    def call_later(self, delay: float, callback: Callable[[], Any]) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback)

    def create_future(self) -> asyncio.Future[Any]:
        return self.loop.create_future()

    def __repr__(self) -> str:
        return f"AsyncioTickScheduler(loop={self._loop!r})"


async def next_tick() -> None:
    """Resume after every callback already queued on the running loop.

    Example:
        >>> queue.unlock()
        >>> await next_tick()
    """
    await asyncio.sleep(0)


__all__ = [
    "AsyncioTickScheduler",
    "Cancellable",
    "TickScheduler",
    "next_tick",
]
