"""Usage counter, unlock leases and the lock-for-lifetime call wrapper.

WHY
───
The idle signal is a single number: how many callers currently use the
shared resource.  ``UsageCounter`` owns that number and compares it with the
parallelism budget; everything else in the engine only ever asks
``is_idle()``.

ARCHITECTURE
────────────
::

    UsageCounter(budget=1, unlock_policy="clamp", on_unlock=probe.trigger)
      ├── .lock()     ─ count += 1, returns UsageLease
      ├── .unlock()   ─ count -= 1, then on_unlock()
      ├── .is_idle()  ─ count < budget
      └── .reset()    ─ count = 0, new epoch

    UsageLease        ─ one-shot unlock capability (callable / context manager)
    CallWrapper(counter).wrap(fn)
                      ─ lock, run fn, unlock once on every exit path

Unmatched unlocks never drive the count negative: the ``clamp`` policy keeps
it at zero and logs a warning, the ``raise`` policy raises
``UnmatchedUnlockError``.

Example::

    counter = UsageCounter(budget=2)
    with counter.lock():
        assert counter.is_idle()        # 1 < 2
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from idlequeue.core.errors import InvalidConfigError, UnmatchedUnlockError
from idlequeue.core.logging import get_logger

T = TypeVar("T")

UNLOCK_POLICIES = ("clamp", "raise")


class UsageCounter:
    """Tracks concurrent busy markers against a parallelism budget.

    Parameters
    ----------
    budget : int
        Lock count at which the resource stops being idle (``>= 1``).
    unlock_policy : str
        ``"clamp"`` or ``"raise"`` for ``unlock()`` calls with no lock held.
    on_unlock : Callable[[], None] | None
        Invoked after every accepted ``unlock()``; the queue wires the idle
        probe trigger in here.
    name : str | None
        Owning queue name, attached to log events and errors.
    """

    def __init__(
        self,
        budget: int = 1,
        unlock_policy: str = "clamp",
        on_unlock: Callable[[], None] | None = None,
        name: str | None = None,
    ) -> None:
        if isinstance(budget, bool) or not isinstance(budget, int) or budget < 1:
            raise InvalidConfigError("parallels", budget, f"parallels must be a positive integer, got {budget!r}")
        if unlock_policy not in UNLOCK_POLICIES:
            raise InvalidConfigError("unlock_policy", unlock_policy)
        self._budget = budget
        self._unlock_policy = unlock_policy
        self._on_unlock = on_unlock
        self._name = name
        self._log = get_logger(__name__, queue=name)
        self._count = 0
        self._epoch = 0

    @property
    def budget(self) -> int:
        return self._budget

    @property
    def count(self) -> int:
        return self._count

    @property
    def logger(self) -> Any:
        return self._log

    @property
    def epoch(self) -> int:
        """Incremented by every ``reset()``; leases from older epochs are void."""
        return self._epoch

    def is_idle(self) -> bool:
        return self._count < self._budget

    def lock(self) -> UsageLease:
        """Mark the resource busy and return the matching unlock capability."""
        self._count += 1
        return UsageLease(self)

    def unlock(self) -> None:
        """Remove one busy marker, then notify ``on_unlock``.

        Raises:
            UnmatchedUnlockError: No lock is held and the policy is ``raise``.
        """
        if self._count > 0:
            self._count -= 1
        elif self._unlock_policy == "raise":
            raise UnmatchedUnlockError().with_context(queue=self._name, operation="unlock")
        else:
            self._log.warning("idle_queue.unmatched_unlock", policy=self._unlock_policy)

        if self._on_unlock is not None:
            self._on_unlock()

    def reset(self) -> None:
        self._count = 0
        self._epoch += 1

    def __repr__(self) -> str:
        return f"UsageCounter(count={self._count}, budget={self._budget})"


class UsageLease:
    """One-shot unlock capability returned by :meth:`UsageCounter.lock`.

    Release it by calling it, by calling :meth:`release`, or by leaving a
    ``with`` block.  Only the first release counts; later ones are ignored,
    as is a release after the counter was reset.
    """

    def __init__(self, counter: UsageCounter) -> None:
        self._counter = counter
        self._epoch = counter.epoch
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """Unlock once. Returns False if this lease had nothing left to release."""
        if self._released:
            self._counter.logger.debug("idle_queue.lease_already_released")
            return False
        self._released = True
        if self._epoch != self._counter.epoch:
            self._counter.logger.debug(
                "idle_queue.lease_expired", lease_epoch=self._epoch, epoch=self._counter.epoch
            )
            return False
        self._counter.unlock()
        return True

    __call__ = release

    def __enter__(self) -> UsageLease:
        return self

    def __exit__(self, *args: Any) -> None:
        self.release()

    def __repr__(self) -> str:
        return f"UsageLease(released={self._released})"


class CallWrapper:
    """Holds a lock on ``counter`` for the whole lifetime of a call.

    Sync callables are unlocked before their value or exception reaches the
    caller.  Callables returning an awaitable get an ``asyncio.Task`` back;
    the task unlocks before its outcome (value, error or cancellation)
    becomes visible to anyone awaiting it.
    """

    def __init__(self, counter: UsageCounter) -> None:
        self._counter = counter

    def wrap(self, fn: Callable[[], T]) -> T | asyncio.Task[Any]:
        lease = self._counter.lock()
        try:
            result = fn()
        except BaseException:
            lease.release()
            raise

        if not inspect.isawaitable(result):
            lease.release()
            return result

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            lease.release()
            if inspect.iscoroutine(result):
                result.close()
            raise
        return loop.create_task(self._hold(result, lease))

    __call__ = wrap

    @staticmethod
    async def _hold(awaitable: Awaitable[T], lease: UsageLease) -> T:
        try:
            return await awaitable
        finally:
            lease.release()


__all__ = ["CallWrapper", "UNLOCK_POLICIES", "UsageCounter", "UsageLease"]
