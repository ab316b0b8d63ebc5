"""Channel multiplexer — many interactive channels over one connection.

Each channel is keyed by a session id and owns a visual surface supplied by
the UI layer. The multiplexer sends subscribe/unsubscribe/input/resize
messages through a send function (normally ConnectionReconciler.send) and
routes inbound output/buffer/detached/exit messages to the right channel.

Channels for the same id are never duplicated: get_or_create() returns the
existing one. Messages for ids that are not (or no longer) registered are
dropped; under reordering that is expected, not an error.

Two namespaces share this machinery:
  pty:*    — terminals for managed sessions (ChannelMultiplexer)
  shell:*  — standalone shells with generated ids (ShellMultiplexer)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from . import protocol
from .channel import Channel
from .logging_config import get_logger
from .scheduler import LoopScheduler, Scheduler
from .surface import SurfaceFactory

logger = get_logger(__name__)

SendFunction = Callable[[protocol.Message], None]

# Refit retries after a visibility change, on top of the immediate attempt
# and the one on the next loop iteration. Container layout settles
# asynchronously, so a single fit can measure a stale size.
REFIT_DELAYS = (0.05, 0.15)


class ChannelMultiplexer:
    """Owns the session id → Channel map for one namespace.

    At most one channel is foregrounded at a time (active_session_id).
    """

    namespace = protocol.PTY

    def __init__(
        self,
        send: SendFunction,
        surface_factory: SurfaceFactory,
        scheduler: Scheduler | None = None,
        refit_delays: Iterable[float] = REFIT_DELAYS,
    ):
        self._send = send
        self._surface_factory = surface_factory
        self._scheduler = scheduler or LoopScheduler()
        self.refit_delays = tuple(refit_delays)
        self.channels: dict[str, Channel] = {}
        self.active_session_id: str | None = None
        self._exit_listeners: list[Callable[[str, int | None], None]] = []

    # --- Channel lifecycle ---

    def get_or_create(self, session_id: str) -> Channel:
        """Get an existing channel or create, mount and subscribe a new one.

        Raises MountError if the UI layer has nowhere to mount the surface;
        nothing is registered or sent in that case.
        """
        channel = self.channels.get(session_id)
        if channel is not None:
            return channel

        surface = self._surface_factory(
            session_id,
            lambda data: self.send_input(session_id, data),
            lambda cols, rows: self.send_resize(session_id, cols, rows),
        )
        surface.hide()
        channel = Channel(session_id, surface)
        self.channels[session_id] = channel
        logger.info("Channel %s: created (%s)", session_id, self.namespace)

        self._subscribe(channel)
        return channel

    def show(self, session_id: str) -> None:
        """Foreground one channel, hide the rest, then refit and focus it."""
        channel = self.channels.get(session_id)
        if channel is None:
            raise KeyError(session_id)

        for other in self.channels.values():
            if other is not channel:
                other.surface.hide()
        channel.surface.show()
        self.active_session_id = session_id

        self._schedule_refit(channel)
        channel.surface.focus()

    def hide_all(self) -> None:
        """Hide every surface; nothing is foregrounded afterwards."""
        for channel in self.channels.values():
            channel.cancel_timers()
            channel.surface.hide()
        self.active_session_id = None

    def refit_active(self) -> None:
        """Refit the foregrounded channel (e.g. after the window regained visibility)."""
        if self.active_session_id is None:
            return
        channel = self.channels.get(self.active_session_id)
        if channel is not None:
            self._schedule_refit(channel)

    def close(self, session_id: str) -> bool:
        """Unsubscribe, dispose the surface and forget the channel.

        If the closed channel was foregrounded, the first remaining channel
        (registry insertion order) takes its place. Returns False for
        unknown ids.
        """
        channel = self.channels.pop(session_id, None)
        if channel is None:
            return False

        self._send(protocol.unsubscribe(self.namespace, session_id))
        channel.dispose()
        logger.info("Channel %s: closed", session_id)

        if self.active_session_id == session_id:
            self.active_session_id = None
            successor = next(iter(self.channels), None)
            if successor is not None:
                self.show(successor)
        return True

    def close_all(self) -> None:
        """Close all channels."""
        for session_id in list(self.channels):
            self.close(session_id)

    def add_exit_listener(self, callback: Callable[[str, int | None], None]) -> None:
        """Call ``callback(session_id, exit_code)`` when a channel's remote process exits."""
        self._exit_listeners.append(callback)

    # --- Outbound ---

    def send_input(self, session_id: str, data: str) -> None:
        """Forward keystrokes. Fire-and-forget; ignored for closed channels."""
        if session_id not in self.channels:
            return
        self._send(protocol.input_data(self.namespace, session_id, data))

    def send_resize(self, session_id: str, cols: int, rows: int) -> None:
        """Forward new surface dimensions. Fire-and-forget; ignored for closed channels."""
        if session_id not in self.channels:
            return
        self._send(protocol.resize(self.namespace, session_id, cols, rows))

    def resubscribe_all(self) -> int:
        """Re-issue subscribe for every registered channel, in registry order.

        Called after the connection comes back: the server does not keep
        subscription state across disconnects.
        """
        for channel in list(self.channels.values()):
            self._subscribe(channel)
        return len(self.channels)

    def _subscribe(self, channel: Channel) -> None:
        channel.mark_subscribing()
        self._send(protocol.subscribe(self.namespace, channel.session_id))

    # --- Inbound ---

    def handles(self, msg: protocol.Message) -> bool:
        namespace, kind = protocol.split_type(str(msg.get("type", "")))
        return namespace == self.namespace and kind in protocol.CHANNEL_KINDS

    def handle_message(self, msg: dict[str, Any]) -> bool:
        """Route an inbound channel message. Returns True if a channel consumed it.

        Applied synchronously on arrival, so per-session order is the
        transport's arrival order.
        """
        _, kind = protocol.split_type(str(msg.get("type", "")))
        session_id = msg.get("sessionId")
        channel = self.channels.get(session_id) if isinstance(session_id, str) else None
        if channel is None:
            logger.debug("Dropping %s for unknown channel %s", msg.get("type"), session_id)
            return False

        if kind in (protocol.OUTPUT, protocol.BUFFER):
            channel.write(msg.get("data") or "")
        elif kind == protocol.DETACHED:
            channel.detach()
        elif kind == protocol.EXIT:
            channel.exit(msg.get("exitCode"))
            for callback in list(self._exit_listeners):
                try:
                    callback(channel.session_id, channel.exit_code)
                except Exception:
                    logger.exception("Exit listener failed for %s", channel.session_id)
        else:
            logger.debug("Dropping unknown channel message %s", msg.get("type"))
            return False
        return True

    # --- Refit ---

    def _schedule_refit(self, channel: Channel) -> None:
        """Fit now, on the next loop iteration, and after each refit delay.

        A newer schedule supersedes pending retries from an older one.
        """
        channel.cancel_timers()
        channel.refit()
        channel.track_timer(self._scheduler.call_soon(channel.refit))
        for delay in self.refit_delays:
            channel.track_timer(self._scheduler.call_later(delay, channel.refit))

    # --- Introspection ---

    def snapshot(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "active": self.active_session_id,
            "channels": {
                sid: {"status": ch.status.value, "exit_code": ch.exit_code, "loading": ch.loading, "created": ch.created}
                for sid, ch in self.channels.items()
            },
        }


class ShellMultiplexer(ChannelMultiplexer):
    """Standalone shells: generated ids, optional working directory, torn down on close."""

    namespace = protocol.SHELL

    def __init__(self, *args: Any, cwd: str | None = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.cwd = cwd
        self._counter = 0

    def generate_id(self) -> str:
        """Next free shell-N id for this multiplexer."""
        while True:
            self._counter += 1
            shell_id = f"shell-{self._counter}"
            if shell_id not in self.channels:
                return shell_id

    def create_shell(self, shell_id: str | None = None) -> Channel:
        """Create (or reuse) a shell channel and foreground it."""
        channel = self.get_or_create(shell_id or self.generate_id())
        self.show(channel.session_id)
        return channel

    def _subscribe(self, channel: Channel) -> None:
        channel.mark_subscribing()
        # "~" means "server default", same as not sending one
        cwd = self.cwd if self.cwd and self.cwd != "~" else None
        self._send(protocol.subscribe(self.namespace, channel.session_id, cwd=cwd))
