"""Tests for idlequeue.execution.usage: UsageCounter, UsageLease, CallWrapper."""

from __future__ import annotations

import asyncio

import pytest
from structlog.testing import capture_logs

from idlequeue.core.errors import InvalidConfigError, UnmatchedUnlockError
from idlequeue.execution.usage import CallWrapper, UsageCounter, UsageLease


class TestUsageCounter:
    def test_idle_by_default(self):
        counter = UsageCounter()
        assert counter.count == 0
        assert counter.budget == 1
        assert counter.is_idle()

    def test_lock_increments(self):
        counter = UsageCounter()
        for _ in range(50):
            counter.lock()
        assert counter.count == 50
        assert not counter.is_idle()

    def test_unlock_decrements(self):
        counter = UsageCounter()
        for _ in range(10):
            counter.lock()
        for _ in range(10):
            counter.unlock()
        assert counter.count == 0
        assert counter.is_idle()

    def test_idle_below_budget(self):
        counter = UsageCounter(budget=2)
        counter.lock()
        assert counter.is_idle()
        counter.lock()
        assert not counter.is_idle()
        counter.unlock()
        assert counter.is_idle()

    def test_unlock_notifies(self):
        calls = []
        counter = UsageCounter(on_unlock=lambda: calls.append(counter.count))
        counter.lock()
        counter.lock()
        counter.unlock()
        assert calls == [1]

    def test_lock_does_not_notify(self):
        calls = []
        counter = UsageCounter(on_unlock=lambda: calls.append(1))
        counter.lock()
        assert calls == []

    @pytest.mark.parametrize("budget", [0, -1, 1.5, "2", True, None])
    def test_invalid_budget(self, budget):
        with pytest.raises(InvalidConfigError) as exc_info:
            UsageCounter(budget=budget)
        assert exc_info.value.key == "parallels"

    def test_invalid_unlock_policy(self):
        with pytest.raises(InvalidConfigError) as exc_info:
            UsageCounter(unlock_policy="ignore")
        assert exc_info.value.key == "unlock_policy"

    def test_reset(self):
        counter = UsageCounter()
        counter.lock()
        counter.lock()
        epoch = counter.epoch
        counter.reset()
        assert counter.count == 0
        assert counter.epoch == epoch + 1


class TestUnmatchedUnlock:
    def test_clamp_keeps_zero_and_warns(self):
        counter = UsageCounter(unlock_policy="clamp")
        with capture_logs() as logs:
            counter.unlock()
        assert counter.count == 0
        assert counter.is_idle()
        assert any(
            log["event"] == "idle_queue.unmatched_unlock" and log["log_level"] == "warning"
            for log in logs
        )

    def test_clamp_still_notifies(self):
        calls = []
        counter = UsageCounter(on_unlock=lambda: calls.append(1))
        counter.unlock()
        assert calls == [1]

    def test_raise_policy(self):
        calls = []
        counter = UsageCounter(unlock_policy="raise", on_unlock=lambda: calls.append(1))
        with pytest.raises(UnmatchedUnlockError) as exc_info:
            counter.unlock()
        assert counter.count == 0
        assert calls == []
        assert exc_info.value.context.operation == "unlock"

    def test_errors_and_warnings_name_the_queue(self):
        with pytest.raises(UnmatchedUnlockError) as exc_info:
            UsageCounter(unlock_policy="raise", name="db").unlock()
        assert exc_info.value.context.queue == "db"

        with capture_logs() as logs:
            UsageCounter(name="db").unlock()
        assert logs[0]["queue"] == "db"

    def test_never_negative_over_interleavings(self):
        counter = UsageCounter(budget=3)
        pattern = "LLULUUULLLUUUU"
        for step in pattern:
            if step == "L":
                counter.lock()
            else:
                counter.unlock()
            assert counter.count >= 0
            assert counter.is_idle() == (counter.count < 3)


class TestUsageLease:
    def test_lock_returns_lease(self):
        counter = UsageCounter()
        lease = counter.lock()
        assert isinstance(lease, UsageLease)
        assert not lease.released

    def test_release_once(self):
        counter = UsageCounter()
        lease = counter.lock()
        counter.lock()
        assert lease.release() is True
        assert lease.release() is False
        assert counter.count == 1

    def test_callable(self):
        counter = UsageCounter()
        unlock = counter.lock()
        unlock()
        assert counter.count == 0

    def test_context_manager(self):
        counter = UsageCounter()
        with counter.lock() as lease:
            assert counter.count == 1
        assert lease.released
        assert counter.count == 0

    def test_context_manager_on_error(self):
        counter = UsageCounter()
        with pytest.raises(RuntimeError):
            with counter.lock():
                raise RuntimeError("boom")
        assert counter.count == 0

    def test_lease_from_old_epoch_is_inert(self):
        counter = UsageCounter(unlock_policy="raise")
        lease = counter.lock()
        counter.reset()
        assert lease.release() is False
        assert counter.count == 0


class TestCallWrapperSync:
    def test_returns_value(self):
        counter = UsageCounter()
        assert CallWrapper(counter).wrap(lambda: 21 + 21) == 42
        assert counter.count == 0

    def test_holds_lock_while_running(self):
        counter = UsageCounter()
        seen = []
        CallWrapper(counter).wrap(lambda: seen.append(counter.count))
        assert seen == [1]

    def test_reraises_same_error_after_unlock(self):
        counter = UsageCounter()
        error = ValueError("foobar")
        seen = []

        def boom():
            seen.append(counter.count)
            raise error

        with pytest.raises(ValueError) as exc_info:
            CallWrapper(counter).wrap(boom)
        assert exc_info.value is error
        assert seen == [1]
        assert counter.count == 0

    def test_none_is_a_plain_value(self):
        counter = UsageCounter()
        assert CallWrapper(counter)(lambda: None) is None
        assert counter.count == 0

    def test_awaitable_without_loop_unlocks(self):
        counter = UsageCounter()

        async def work():
            return 1

        with pytest.raises(RuntimeError):
            CallWrapper(counter).wrap(work)
        assert counter.count == 0


class TestCallWrapperAsync:
    @pytest.mark.asyncio
    async def test_holds_lock_until_settled(self):
        counter = UsageCounter()

        async def work():
            await asyncio.sleep(0.05)
            return 42

        task = CallWrapper(counter).wrap(work)
        assert isinstance(task, asyncio.Task)
        assert counter.count == 1
        assert await task == 42
        assert counter.count == 0

    @pytest.mark.asyncio
    async def test_forwards_rejection_after_unlock(self):
        counter = UsageCounter()

        class Flagged(Exception):
            flag = True

        async def work():
            await asyncio.sleep(0)
            raise Flagged("foobar")

        task = CallWrapper(counter).wrap(work)
        try:
            await task
        except Flagged as err:
            assert err.flag
            assert counter.count == 0
        else:
            pytest.fail("expected Flagged")

    @pytest.mark.asyncio
    async def test_wraps_plain_future(self):
        counter = UsageCounter()
        loop = asyncio.get_running_loop()
        fut = loop.create_future()
        task = CallWrapper(counter).wrap(lambda: fut)
        await asyncio.sleep(0)
        assert counter.count == 1
        fut.set_result("done")
        assert await task == "done"
        assert counter.count == 0

    @pytest.mark.asyncio
    async def test_unlocks_on_cancellation(self):
        counter = UsageCounter()
        task = CallWrapper(counter).wrap(lambda: asyncio.sleep(60))
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert counter.count == 0

    @pytest.mark.asyncio
    async def test_unlocks_exactly_once(self):
        calls = []
        counter = UsageCounter(on_unlock=lambda: calls.append(1))

        async def work():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await CallWrapper(counter).wrap(work)
        assert calls == [1]
