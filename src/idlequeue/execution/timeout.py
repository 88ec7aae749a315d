"""Per-request deadlines.

A request created with ``timeout=<ms>`` gets a timer that force-resolves it
when the deadline passes, whether or not the resource is idle.  The timer
handle is stored on the request and must be disarmed on every path that
takes the request out of the queue.

Example::

    guard = TimeoutGuard(scheduler)
    guard.arm(request, on_expire=queue.expire)
    ...
    guard.disarm(request)   # settle / cancel / clear
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from idlequeue.core.errors import InvalidTimeoutError
from idlequeue.execution.requests import IdleRequest
from idlequeue.execution.scheduler import TickScheduler


def validate_timeout(timeout: Any) -> float | None:
    """Return ``timeout`` as float milliseconds, ``None`` meaning no deadline.

    Raises:
        InvalidTimeoutError: If ``timeout`` is not a positive number, or is
            an int too large to represent as a float.
    """
    if timeout is None:
        return None
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise InvalidTimeoutError(timeout)
    try:
        milliseconds = float(timeout)
    except OverflowError:
        raise InvalidTimeoutError(timeout) from None
    if not milliseconds > 0:
        raise InvalidTimeoutError(timeout)
    return milliseconds


class TimeoutGuard:
    """Arms and disarms request deadlines on a :class:`TickScheduler`."""

    def __init__(self, scheduler: TickScheduler) -> None:
        self._scheduler = scheduler

    def arm(self, request: IdleRequest, on_expire: Callable[[IdleRequest], None]) -> None:
        if request.timeout_ms is None:
            return
        request.timer = self._scheduler.call_later(
            request.timeout_ms / 1000.0,
            lambda: on_expire(request),
        )

    def disarm(self, request: IdleRequest) -> None:
        timer = request.timer
        if timer is not None:
            request.timer = None
            timer.cancel()


__all__ = ["TimeoutGuard", "validate_timeout"]
