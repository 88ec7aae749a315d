"""Handle registry: callback-style façade over deferred requests.

``request_idle_callback`` mirrors the browser ``requestIdleCallback`` API:
it returns an integer handle immediately and runs the callback once the
underlying :class:`IdleRequest` resolves.  The handle can later be passed to
``cancel_idle_callback``.

Handles start at 1, only ever increase, and are never handed out twice by
the same registry, not even after ``clear()``.  The handle → request side of
the mapping lives here; the request → handle side is ``IdleRequest.handle``.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

from idlequeue.core.logging import get_logger
from idlequeue.execution.deferred import DeferredQueue
from idlequeue.execution.requests import IdleRequest


class HandleRegistry:
    """Maps integer handles to the live requests of one :class:`DeferredQueue`.

    Tasks started for async callbacks are held in ``tasks`` until they
    finish; a failure is handed to the loop's exception handler.
    """

    def __init__(self, queue: DeferredQueue) -> None:
        self._queue = queue
        self._log = get_logger(__name__, queue=queue.name)
        self._last_handle = 0
        self._requests: dict[int, IdleRequest] = {}
        self._tasks: set[asyncio.Future[Any]] = set()
        queue.add_detach_listener(self._forget)

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, handle: object) -> bool:
        return self.lookup(handle) is not None

    @property
    def tasks(self) -> frozenset[asyncio.Future[Any]]:
        """Async callbacks that are still running."""
        return frozenset(self._tasks)

    def lookup(self, handle: Any) -> IdleRequest | None:
        if isinstance(handle, bool) or not isinstance(handle, int):
            return None
        return self._requests.get(handle)

    def request_idle_callback(
        self,
        callback: Callable[[], Any],
        timeout: float | None = None,
    ) -> int:
        """Run ``callback`` in the next idle window and return its handle.

        Exceptions raised by ``callback`` are not caught here; they reach the
        event loop's exception handler.  A callback returning an awaitable is
        scheduled as a task.
        """
        request = self._queue.request(timeout)

        self._last_handle += 1
        handle = self._last_handle
        request.handle = handle
        self._requests[handle] = request

        def _run(fut: asyncio.Future[None]) -> None:
            if fut.cancelled():
                return
            result = callback()
            if inspect.isawaitable(result):
                self._track(asyncio.ensure_future(result), handle)

        request.add_done_callback(_run)
        self._log.debug("idle_queue.callback_registered", handle=handle, sequence=request.sequence)
        return handle

    def cancel_idle_callback(self, handle: Any) -> None:
        """Cancel the callback behind ``handle``; unknown handles are ignored."""
        request = self.lookup(handle)
        if request is not None:
            self._queue.cancel(request)

    def clear(self) -> None:
        """Drop every mapping. The handle sequence keeps counting.

        Callbacks that already started keep running.
        """
        for request in self._requests.values():
            request.handle = None
        self._requests.clear()

    def _track(self, task: asyncio.Future[Any], handle: int) -> None:
        self._tasks.add(task)

        def _finished(done: asyncio.Future[Any]) -> None:
            self._tasks.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if exc is not None:
                done.get_loop().call_exception_handler(
                    {
                        "message": f"Idle callback for handle {handle} failed",
                        "exception": exc,
                        "future": done,
                    }
                )

        task.add_done_callback(_finished)

    def _forget(self, request: IdleRequest) -> None:
        if request.handle is not None and self._requests.get(request.handle) is request:
            del self._requests[request.handle]


__all__ = ["HandleRegistry"]
