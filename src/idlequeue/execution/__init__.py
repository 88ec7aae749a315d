"""idle-queue execution: the idle-scheduling engine.

ARCHITECTURE
────────────
::

    UsageCounter ──unlock──► IdleProbe ──resolve_oldest──► DeferredQueue
         ▲                      ▲                            │  ├─ TimeoutGuard
         │                      └──────── on_enqueue ────────┘  └─ HandleRegistry
    CallWrapper / UsageLease

    scheduler.py   TickScheduler protocol + AsyncioTickScheduler
    usage.py       UsageCounter, UsageLease, CallWrapper
    requests.py    IdleRequest, RequestState, ResolvedBy
    timeout.py     TimeoutGuard, validate_timeout
    deferred.py    DeferredQueue
    probe.py       IdleProbe
    handles.py     HandleRegistry
"""

from idlequeue.execution.deferred import DeferredQueue
from idlequeue.execution.handles import HandleRegistry
from idlequeue.execution.probe import IdleProbe
from idlequeue.execution.requests import IdleRequest, RequestState, ResolvedBy
from idlequeue.execution.scheduler import AsyncioTickScheduler, TickScheduler, next_tick
from idlequeue.execution.timeout import TimeoutGuard, validate_timeout
from idlequeue.execution.usage import CallWrapper, UsageCounter, UsageLease

__all__ = [
    "AsyncioTickScheduler",
    "CallWrapper",
    "DeferredQueue",
    "HandleRegistry",
    "IdleProbe",
    "IdleRequest",
    "RequestState",
    "ResolvedBy",
    "TickScheduler",
    "TimeoutGuard",
    "UsageCounter",
    "UsageLease",
    "next_tick",
    "validate_timeout",
]
