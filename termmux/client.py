"""MuxClient — one explicitly owned bundle of everything the UI talks to.

There are no module-level managers: a client owns its reconciler, its two
multiplexers (session terminals and standalone shells), its placeholder
registry and its session directory. Tests and embedders can run as many
independent clients in one process as they like.

Inbound messages from the transport land in handle_message(), which
validates them and routes by type:
  pty:*      → terminals
  shell:*    → shells
  sessions / session_update / session_created → session directory
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from . import config, protocol
from .connection import ConnectionReconciler, Transport
from .errors import ProtocolError
from .logging_config import get_logger
from .mux import ChannelMultiplexer, ShellMultiplexer
from .placeholders import Placeholder, PlaceholderRegistry
from .scheduler import LoopScheduler, Scheduler
from .sessions import SessionDirectory
from .surface import SurfaceFactory
from .types import ManagedSession

logger = get_logger(__name__)


class MuxClient:
    """Wires the multiplexing and reconciliation layer together."""

    def __init__(
        self,
        surface_factory: SurfaceFactory,
        transport: Transport | None = None,
        scheduler: Scheduler | None = None,
        shell_surface_factory: SurfaceFactory | None = None,
        shell_cwd: str | None = None,
        on_finalize: Callable[[str, Any], None] | None = None,
        on_remove_standin: Callable[[str], None] | None = None,
        on_expire: Callable[[Placeholder], None] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> None:
        self.settings = settings if settings is not None else config.get_mux_config()
        self.scheduler = scheduler or LoopScheduler()
        refit_delays = self.settings.get("refit_delays", ())

        self.connection = ConnectionReconciler(
            transport,
            max_queue=int(self.settings.get("max_queue", 1000)),
            message_handler=self.handle_message,
        )
        self.terminals = ChannelMultiplexer(
            self.connection.send,
            surface_factory,
            self.scheduler,
            refit_delays=refit_delays,
        )
        self.shells = ShellMultiplexer(
            self.connection.send,
            shell_surface_factory or surface_factory,
            self.scheduler,
            refit_delays=refit_delays,
            cwd=shell_cwd,
        )
        self.connection.attach(self.terminals)
        self.connection.attach(self.shells)

        self.placeholders = PlaceholderRegistry(
            self.scheduler,
            on_finalize=on_finalize,
            on_remove_standin=on_remove_standin,
            on_expire=on_expire,
            default_ttl=float(self.settings.get("placeholder_ttl", 10.0)),
        )
        self.sessions = SessionDirectory(self.connection.send, self.placeholders)
        self._snapshot_listeners: list[Callable[[list[ManagedSession], list[ManagedSession]], None]] = []

    def add_snapshot_listener(
        self, callback: Callable[[list[ManagedSession], list[ManagedSession]], None]
    ) -> None:
        """Call ``callback(all_sessions, newly_idle)`` after each sessions snapshot."""
        self._snapshot_listeners.append(callback)

    # --- Inbound ---

    def handle_message(self, message: Any) -> bool:
        """Validate and route one inbound message. Returns True if something consumed it.

        Malformed and unknown messages are logged and dropped.
        """
        try:
            msg = protocol.validate_inbound(message)
        except ProtocolError as e:
            logger.warning("Dropping malformed message: %s", e)
            return False

        msg_type = msg["type"]
        if self.terminals.handles(msg):
            return self.terminals.handle_message(msg)
        if self.shells.handles(msg):
            return self.shells.handle_message(msg)

        try:
            if msg_type == protocol.SESSIONS:
                newly_idle = self.sessions.apply_snapshot(msg["payload"])
                everything = self.sessions.all()
                for callback in list(self._snapshot_listeners):
                    callback(everything, newly_idle)
                return True
            if msg_type in (protocol.SESSION_UPDATE, protocol.SESSION_CREATED):
                self.sessions.apply_update(msg["payload"])
                return True
        except ProtocolError as e:
            logger.warning("Dropping %s: %s", msg_type, e)
            return False

        logger.debug("Ignoring message type %s", msg_type)
        return False

    # --- UI intents ---

    def open_terminal(self, session_id: str, show: bool = True):
        """Get or create the terminal channel for a managed session, optionally foregrounding it."""
        channel = self.terminals.get_or_create(session_id)
        if show:
            self.terminals.show(session_id)
        return channel

    def request_session(
        self,
        name: str,
        speculative_data: Any,
        cleanup_token: str | None = None,
        ttl: float | None = None,
    ) -> Placeholder:
        """Record the optimistic side of a session-creation request.

        The placeholder resolves when a session with this name first shows
        up in a session_created, session_update or sessions message.
        """
        return self.placeholders.record(name, speculative_data, ttl=ttl, cleanup_token=cleanup_token)

    def close(self) -> None:
        """Tear down every channel and placeholder this client owns."""
        self.terminals.close_all()
        self.shells.close_all()
        self.placeholders.cancel_all()

    # --- Debug ---

    def snapshot(self) -> dict[str, Any]:
        """Dump internal state for debugging. Only available with debug enabled."""
        if not config.debug_enabled(self.settings):
            raise RuntimeError("debug introspection disabled (set debug in mux_config.json or TERMMUX_DEBUG=1)")
        return {
            "connected": self.connection.connected,
            "queued": self.connection.queued,
            "terminals": self.terminals.snapshot(),
            "shells": self.shells.snapshot(),
            "placeholders": self.placeholders.keys(),
            "sessions": {s.id: s.status.value for s in self.sessions.all()},
        }
