"""
idle-queue - Run deferred work only while a shared resource is idle.

- idlequeue.queue: IdleQueue, the public entry point
- idlequeue.execution: the engine (usage counter, probe, deferred queue)
- idlequeue.core: errors, logging, settings
"""

__version__ = "1.0.0"

from idlequeue.core.errors import (
    IdleQueueError,
    InvalidConfigError,
    InvalidTimeoutError,
    UnmatchedUnlockError,
)
from idlequeue.core.settings import IdleQueueSettings
from idlequeue.execution.requests import IdleRequest, RequestState, ResolvedBy
from idlequeue.execution.scheduler import AsyncioTickScheduler, TickScheduler, next_tick
from idlequeue.execution.usage import UsageLease
from idlequeue.queue import IdleQueue

__all__ = [
    "AsyncioTickScheduler",
    "IdleQueue",
    "IdleQueueError",
    "IdleQueueSettings",
    "IdleRequest",
    "InvalidConfigError",
    "InvalidTimeoutError",
    "RequestState",
    "ResolvedBy",
    "TickScheduler",
    "UnmatchedUnlockError",
    "UsageLease",
    "next_tick",
]
