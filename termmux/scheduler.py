"""Cancellable timers.

Timers are the only concurrency primitive in the multiplexer: surface
refit retries and placeholder expiry. Everything runs on one event loop;
a scheduler just hands out handles that can be cancelled individually.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Scheduler(Protocol):
    """What the multiplexer and placeholder registry need from a clock."""

    def now(self) -> float: ...

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by an asyncio event loop.

    The loop is resolved lazily so instances can be built outside a running
    loop and used once one is running.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> asyncio.Handle:
        return self.loop.call_soon(callback, *args)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> asyncio.TimerHandle:
        return self.loop.call_later(delay, callback, *args)
