"""Deferred idle request entity.

An ``IdleRequest`` is created by ``request_idle_promise()`` and owned by one
``DeferredQueue`` until it reaches a terminal state.  Everything needed to
settle or cancel it (the completion future, the armed deadline timer, the
callback handle) lives on the request itself, so two queues never share
state.

Valid transition graph::

    PENDING  → RESOLVED | CANCELLED
    RESOLVED → (terminal)
    CANCELLED → (terminal)

A cancelled request's future is left pending forever: awaiting it blocks
until the awaiting task itself is cancelled.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from idlequeue.execution.scheduler import Cancellable


class RequestState(str, Enum):
    """Lifecycle state of an :class:`IdleRequest`."""

    PENDING = "pending"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class ResolvedBy(str, Enum):
    """Which path resolved a request."""

    IDLE = "idle"
    TIMEOUT = "timeout"


REQUEST_VALID_TRANSITIONS: dict[RequestState, frozenset[RequestState]] = {
    RequestState.PENDING: frozenset({
        RequestState.RESOLVED,
        RequestState.CANCELLED,
    }),
    RequestState.RESOLVED: frozenset(),  # terminal
    RequestState.CANCELLED: frozenset(),  # terminal
}


@dataclass(eq=False)
class IdleRequest:
    """A caller's registration of interest in the next confirmed-idle window.

    Awaitable: ``await request`` returns ``None`` once the request resolves.

    Attributes:
        sequence: Insertion sequence number, defines FIFO order
        future: Completion signal, resolved exactly once
        timeout_ms: Deadline after which the request is force-resolved
        handle: Callback handle when created through ``request_idle_callback``
        state: Current lifecycle state
        resolved_by: ``IDLE`` or ``TIMEOUT`` once resolved
        created_at: Monotonic creation time
    """

    sequence: int
    future: asyncio.Future[None] = field(repr=False)
    timeout_ms: float | None = None
    handle: int | None = None
    state: RequestState = RequestState.PENDING
    resolved_by: ResolvedBy | None = None
    created_at: float = field(default_factory=time.monotonic)
    timer: Cancellable | None = field(default=None, repr=False)

    def __await__(self) -> Generator[Any, None, None]:
        return self.future.__await__()

    @property
    def is_pending(self) -> bool:
        return self.state is RequestState.PENDING

    def done(self) -> bool:
        """True once resolved. Cancelled requests never become done."""
        return self.future.done()

    def add_done_callback(self, fn: Callable[[asyncio.Future[None]], Any]) -> None:
        self.future.add_done_callback(fn)

    def transition_to(self, target: RequestState) -> bool:
        """Move to ``target`` if allowed; returns False for terminal requests."""
        if target not in REQUEST_VALID_TRANSITIONS[self.state]:
            return False
        self.state = target
        return True


__all__ = [
    "IdleRequest",
    "REQUEST_VALID_TRANSITIONS",
    "RequestState",
    "ResolvedBy",
]
