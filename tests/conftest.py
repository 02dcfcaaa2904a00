"""Pytest configuration and fixtures."""

import asyncio
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import pytest

from tripwire.execution.bridge import ExecutionBridge
from tripwire.execution.types import (
    Delivered,
    ExecutionResult,
    InstructionRequest,
)
from tripwire.storage.facade import Storage


class FakeClock:
    """Controllable clock; call it to read the current time."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingChannel:
    """Messaging channel that keeps what it was asked to deliver."""

    def __init__(self) -> None:
        self.delivered: List[Tuple[str, str]] = []

    async def deliver(self, owner_id: str, text: str) -> None:
        self.delivered.append((owner_id, text))


class StubExecutor:
    """Instruction executor returning a fixed result (or raising)."""

    def __init__(self, result: Optional[ExecutionResult] = None) -> None:
        self.result: ExecutionResult = result or Delivered(text="done")
        self.error: Optional[Exception] = None
        self.requests: List[InstructionRequest] = []

    async def execute(self, request: InstructionRequest) -> ExecutionResult:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def clock():
    """Fake clock fixed at 2024-01-01 12:00 UTC."""
    return FakeClock()


@pytest.fixture
def channel():
    return RecordingChannel()


@pytest.fixture
def executor():
    return StubExecutor()


@pytest.fixture
def bridge(executor, channel):
    return ExecutionBridge(executor, channel)


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'tripwire.db'}"


@pytest.fixture
async def storage(db_url):
    """Initialized storage backed by a temporary database."""
    store = Storage(db_url)
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def eventually():
    """Poll a condition until it holds or a timeout passes."""

    async def wait(
        condition: Callable[[], Any], timeout: float = 3.0, interval: float = 0.02
    ) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if condition():
                return True
            await asyncio.sleep(interval)
        return bool(condition())

    return wait
