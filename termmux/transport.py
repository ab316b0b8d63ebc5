"""WebSocket transport with automatic reconnection.

Frames are JSON objects, one per websocket text message. The receive loop
runs as a task on the caller's event loop and reports every connection edge
to the ConnectionReconciler, which owns all subscription bookkeeping.
Outbound messages go through a per-connection outbox drained by a sender
task, so send() never blocks the caller.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import websockets
from websockets.exceptions import ConnectionClosed

from . import protocol
from .connection import ConnectionReconciler
from .errors import TransportError, classify_exception
from .logging_config import get_logger

logger = get_logger(__name__)

WS_INITIAL_BACKOFF = 1.0  # Initial reconnect delay in seconds
WS_MAX_BACKOFF = 30.0  # Maximum reconnect delay
WS_BACKOFF_MULTIPLIER = 2.0  # Exponential backoff multiplier


class WebSocketTransport:
    """Keeps one websocket open to the server and feeds a ConnectionReconciler."""

    def __init__(
        self,
        url: str,
        reconciler: ConnectionReconciler,
        initial_backoff: float = WS_INITIAL_BACKOFF,
        max_backoff: float = WS_MAX_BACKOFF,
        backoff_multiplier: float = WS_BACKOFF_MULTIPLIER,
    ) -> None:
        self.url = url
        self._reconciler = reconciler
        self._initial_backoff = initial_backoff
        self._max_backoff = max_backoff
        self._backoff_multiplier = backoff_multiplier
        self._ws: Any = None
        self._outbox: asyncio.Queue[protocol.Message] | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self.fatal_error: str | None = None
        reconciler.bind(self)

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Launch the connection loop as a background task."""
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Close the connection and stop reconnecting."""
        self._running = False
        if self._ws is not None:
            await self._ws.close()
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def force_reconnect(self) -> None:
        """Drop the current connection; the loop reconnects immediately."""
        if self._ws is not None:
            logger.info("Manual reconnect requested")
            await self._ws.close()

    def send(self, message: protocol.Message) -> None:
        """Queue a message on the current connection. Called by the reconciler."""
        if self._outbox is None:
            raise TransportError("not connected")
        self._outbox.put_nowait(message)

    # --- Connection loop ---

    async def _run(self) -> None:
        backoff = self._initial_backoff
        while self._running:
            try:
                await self._connect_and_run()
                backoff = self._initial_backoff
            except asyncio.CancelledError:
                self._teardown()
                raise
            except Exception as e:
                info = classify_exception(e)
                self._teardown()
                if info.fatal:
                    logger.error("Connection to %s refused permanently: %s", self.url, info.text)
                    self.fatal_error = info.text
                    self._running = False
                    break
                if info.category == "unknown":
                    logger.error("Unexpected connection error: %s", info.text, exc_info=True)
                else:
                    logger.info("Connection %s (%s); retrying in %.1fs", info.category, info.text, backoff)

            if not self._running:
                break
            await asyncio.sleep(backoff)
            backoff = min(backoff * self._backoff_multiplier, self._max_backoff)

    async def _connect_and_run(self) -> None:
        """Connect, announce readiness, and pump messages until the socket closes."""
        logger.debug("Connecting to %s", self.url)
        async with websockets.connect(self.url) as ws:
            self._ws = ws
            self._outbox = asyncio.Queue()
            sender = asyncio.create_task(self._sender(ws, self._outbox))
            logger.info("Connected to %s", self.url)
            try:
                self._reconciler.on_connected()
                async for raw in ws:
                    self._dispatch(raw)
            except ConnectionClosed:
                logger.info("Connection closed by server")
            finally:
                sender.cancel()
                try:
                    await sender
                except asyncio.CancelledError:
                    pass
                self._teardown()

    async def _sender(self, ws: Any, outbox: asyncio.Queue[protocol.Message]) -> None:
        while True:
            message = await outbox.get()
            try:
                await ws.send(json.dumps(message))
            except ConnectionClosed:
                # Put it back so teardown hands it to the reconciler's queue
                requeued: asyncio.Queue[protocol.Message] = asyncio.Queue()
                requeued.put_nowait(message)
                while not outbox.empty():
                    requeued.put_nowait(outbox.get_nowait())
                self._outbox = requeued
                return

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning("Invalid JSON from server: %r", raw[:100])
            return
        try:
            self._reconciler.on_message(message)
        except Exception:
            logger.exception("Message dispatch failed for %s", message.get("type") if isinstance(message, dict) else "?")

    def _teardown(self) -> None:
        """Forget the socket, report the disconnect and requeue unsent messages."""
        self._ws = None
        outbox, self._outbox = self._outbox, None
        if outbox is None:
            return
        self._reconciler.on_disconnected()
        unsent = 0
        while not outbox.empty():
            self._reconciler.send(outbox.get_nowait())
            unsent += 1
        if unsent:
            logger.debug("Requeued %d unsent messages", unsent)
