"""
Shared pytest fixtures and configuration for idle-queue tests.

This module provides:
- ``ManualScheduler``: a TickScheduler double that only runs ticks on demand
- ``ticks`` / ``wait_until`` helpers for tests on the real event loop
- structlog reset between tests

Usage:
    Fixtures are auto-discovered by pytest.

    def test_probe(manual_scheduler):
        queue = IdleQueue(scheduler=manual_scheduler)
        ...
        manual_scheduler.tick(2)
"""

import asyncio
import sys
import time
from pathlib import Path
from typing import Any, Callable, Generator

import pytest
import structlog

# Ensure idlequeue package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Mark all tests without explicit markers as unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Logging Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog() -> Generator[None, None, None]:
    """Undo any configure_logging() done by a test."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


# =============================================================================
# Scheduling Helpers
# =============================================================================


class ManualHandle:
    def __init__(self, callback: Callable[[], Any], delay: float | None = None) -> None:
        self.callback = callback
        self.delay = delay
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """TickScheduler whose ticks and timers only advance when told to."""

    def __init__(self, loop: asyncio.AbstractEventLoop) -> None:
        self.loop = loop
        self.ready: list[ManualHandle] = []
        self.timers: list[ManualHandle] = []
        self.tick_count = 0

    def call_soon(self, callback: Callable[[], Any]) -> ManualHandle:
        handle = ManualHandle(callback)
        self.ready.append(handle)
        return handle

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ManualHandle:
        handle = ManualHandle(callback, delay)
        self.timers.append(handle)
        return handle

    def create_future(self) -> asyncio.Future[Any]:
        return self.loop.create_future()

    def tick(self, n: int = 1) -> None:
        """Run the callbacks queued before each tick, ``n`` times."""
        for _ in range(n):
            batch, self.ready = self.ready, []
            self.tick_count += 1
            for handle in batch:
                if not handle.cancelled:
                    handle.callback()

    def fire_timers(self) -> None:
        batch, self.timers = self.timers, []
        for handle in batch:
            if not handle.cancelled:
                handle.callback()

    @property
    def live_timers(self) -> list[ManualHandle]:
        return [t for t in self.timers if not t.cancelled]


@pytest.fixture
def loop() -> Generator[asyncio.AbstractEventLoop, None, None]:
    """A private, non-running event loop that owns request futures."""
    event_loop = asyncio.new_event_loop()
    yield event_loop
    event_loop.close()


@pytest.fixture
def manual_scheduler(loop: asyncio.AbstractEventLoop) -> ManualScheduler:
    return ManualScheduler(loop)


async def _ticks(n: int = 1) -> None:
    for _ in range(n):
        await asyncio.sleep(0)


async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.fixture
def ticks() -> Callable[[int], Any]:
    """``await ticks(n)`` yields to the running loop ``n`` times."""
    return _ticks


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """``await wait_until(predicate)`` polls until true or fails after 2s."""
    return _wait_until
