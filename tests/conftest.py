"""Shared fixtures for termmux tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

import termmux.config as config
from termmux.client import MuxClient
from termmux.connection import ConnectionReconciler
from termmux.mux import ChannelMultiplexer, ShellMultiplexer
from termmux.surface import BufferSurfaceFactory


class ManualTimer:
    """Timer handle driven by ManualScheduler."""

    def __init__(self, when: float, seq: int, callback: Callable[..., Any], args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.fired = False
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualScheduler:
    """Virtual clock: timers only fire when the test calls advance()."""

    def __init__(self) -> None:
        self._now = 0.0
        self._seq = 0
        self._timers: list[ManualTimer] = []

    def now(self) -> float:
        return self._now

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        return self.call_later(0, callback, *args)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ManualTimer:
        self._seq += 1
        timer = ManualTimer(self._now + delay, self._seq, callback, args)
        self._timers.append(timer)
        return timer

    def pending(self) -> list[ManualTimer]:
        return [t for t in self._timers if not t.fired and not t.cancelled()]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing due timers in (deadline, creation) order."""
        target = self._now + seconds
        while True:
            due = sorted(
                (t for t in self.pending() if t.when <= target),
                key=lambda t: (t.when, t.seq),
            )
            if not due:
                break
            timer = due[0]
            self._now = max(self._now, timer.when)
            timer.fired = True
            timer.callback(*timer.args)
        self._now = target


class FakeTransport:
    """Records everything sent through it."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def of_type(self, msg_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == msg_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture(autouse=True)
def _reset_config(monkeypatch):
    """Every test starts without a data dir and without debug overrides."""
    monkeypatch.delenv("TERMMUX_DEBUG", raising=False)
    monkeypatch.setattr(config, "_data_dir", None)
    monkeypatch.setattr(config, "_mux_config_cache", None)
    monkeypatch.setattr(config, "_mux_config_mtime", 0.0)


@pytest.fixture
def data_dir(tmp_path):
    """A temporary data directory with config initialised."""
    d = tmp_path / "data"
    d.mkdir()
    config.init(d)
    return d


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def surfaces():
    return BufferSurfaceFactory()


@pytest.fixture
def sent():
    """A list that collects messages from a bare send function."""
    return []


@pytest.fixture
def mux(sent, surfaces, scheduler):
    return ChannelMultiplexer(sent.append, surfaces, scheduler)


@pytest.fixture
def shell_mux(sent, surfaces, scheduler):
    return ShellMultiplexer(sent.append, surfaces, scheduler)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def reconciler(transport):
    return ConnectionReconciler(transport)


@pytest.fixture
def client(surfaces, transport, scheduler):
    """A MuxClient on a fake transport, already connected."""
    c = MuxClient(surfaces, transport=transport, scheduler=scheduler, settings=dict(config._MUX_CONFIG_DEFAULTS))
    c.connection.on_connected()
    transport.clear()
    yield c
    c.close()
