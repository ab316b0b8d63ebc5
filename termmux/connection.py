"""Connection reconciler — keeps channel subscriptions alive across reconnects.

The transport reports connect/disconnect; this module decides what happens
to outbound traffic around those edges:

- While disconnected, messages are queued (bounded; oldest dropped first).
- On (re)connect, every attached multiplexer resubscribes all of its
  channels once, in registry order. Then the queue is flushed in order,
  minus queued subscribe/unsubscribe messages: the server forgot its
  subscription bookkeeping with the old connection, and the resubscription
  pass has already rebuilt exactly the live set. A queued shell:close still
  goes out, since the shell process outlives the connection.
- On disconnect, nothing local is torn down. Channels keep their content
  and their (now stale) subscription status.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from typing import Any, Protocol

from . import protocol
from .logging_config import get_logger

logger = get_logger(__name__)

MAX_QUEUE = 1000  # Outbound messages held while disconnected


class Transport(Protocol):
    """The wire. Framing and socket management live behind this."""

    def send(self, message: protocol.Message) -> None: ...


class Resubscribable(Protocol):
    def resubscribe_all(self) -> int: ...


class ConnectionReconciler:
    """Gatekeeper between the multiplexers and the transport.

    ``send`` is the send function handed to multiplexers and the session
    directory. The transport calls ``on_connected``, ``on_disconnected`` and
    ``on_message``.
    """

    def __init__(
        self,
        transport: Transport | None = None,
        max_queue: int = MAX_QUEUE,
        message_handler: Callable[[Any], None] | None = None,
    ) -> None:
        self._transport = transport
        self._queue: deque[protocol.Message] = deque()
        self._max_queue = max_queue
        self._multiplexers: list[Resubscribable] = []
        self._listeners: list[Callable[[bool], None]] = []
        self._message_handler = message_handler
        self._connected = False

    @property
    def connected(self) -> bool:
        """Whether the transport last reported ready-to-send."""
        return self._connected

    @property
    def queued(self) -> int:
        return len(self._queue)

    def bind(self, transport: Transport) -> None:
        """Set the transport (for transports that need the reconciler at construction)."""
        self._transport = transport

    def attach(self, multiplexer: Resubscribable) -> None:
        """Register a multiplexer for resubscription on connect."""
        if multiplexer not in self._multiplexers:
            self._multiplexers.append(multiplexer)

    def add_listener(self, callback: Callable[[bool], None]) -> None:
        """Call ``callback(connected)`` on every connection edge."""
        self._listeners.append(callback)

    def set_message_handler(self, handler: Callable[[Any], None]) -> None:
        self._message_handler = handler

    # --- Outbound ---

    def send(self, message: protocol.Message) -> None:
        """Send now if ready, otherwise queue until the next connect."""
        if self._connected and self._transport is not None:
            self._transport.send(message)
            return
        if len(self._queue) >= self._max_queue:
            dropped = self._queue.popleft()
            logger.warning("Outbound queue full (%d), dropping oldest %s", self._max_queue, dropped.get("type"))
        self._queue.append(message)

    # --- Transport lifecycle ---

    def on_connected(self) -> None:
        """Transport is ready: resubscribe everything, then flush the queue."""
        if self._transport is None:
            raise RuntimeError("ConnectionReconciler has no transport bound")
        self._connected = True

        total = 0
        for multiplexer in self._multiplexers:
            total += multiplexer.resubscribe_all()

        flushed = skipped = 0
        while self._queue and self._connected:
            message = self._queue.popleft()
            if protocol.is_subscription_control(message):
                skipped += 1
                continue
            self._transport.send(message)
            flushed += 1

        logger.info("Connected: resubscribed %d channels, flushed %d queued (%d superseded)", total, flushed, skipped)
        self._notify(True)

    def on_disconnected(self) -> None:
        """Transport lost. Local state is kept as-is."""
        if not self._connected:
            return
        self._connected = False
        logger.info("Disconnected; channels kept, outbound messages will queue")
        self._notify(False)

    def on_message(self, message: Any) -> None:
        """Inbound message from the transport."""
        if self._message_handler is None:
            logger.debug("No message handler; dropping %r", message)
            return
        self._message_handler(message)

    def _notify(self, connected: bool) -> None:
        for callback in list(self._listeners):
            try:
                callback(connected)
            except Exception:
                logger.exception("Connection listener failed")
