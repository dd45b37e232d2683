"""Shared test helpers for pubflow."""

from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone

import pytest

from pubflow.config import ConfigManager

START = datetime(2026, 1, 1, 0, 0, 30, tzinfo=timezone.utc)


class ManualTime:
    """Controllable clock: ``sleep`` blocks until ``advance`` moves time past its target."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start
        self._waiters: list[tuple[datetime, asyncio.Future[None]]] = []

    def now(self) -> datetime:
        return self.current

    async def sleep(self, seconds: float) -> None:
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append((self.current + timedelta(seconds=seconds), future))
        await future

    async def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)
        due = [item for item in self._waiters if item[0] <= self.current]
        self._waiters = [item for item in self._waiters if item[0] > self.current]
        for _, future in due:
            if not future.done():
                future.set_result(None)
        await settle()

    async def settle(self, rounds: int = 50) -> None:
        await settle(rounds)


async def settle(rounds: int = 50) -> None:
    """Let ready tasks run to their next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    for key in list(os.environ):
        if key.startswith("PUBFLOW_"):
            monkeypatch.delenv(key, raising=False)
    ConfigManager._reset_for_tests()
    yield
    ConfigManager._reset_for_tests()


@pytest.fixture
def manual_time() -> ManualTime:
    return ManualTime()
