"""Managed session directory — a local cache of server-owned session state.

Status only ever changes because the server said so. Local actions that
would change status (reactivate, dismiss) are sent as requests and take
effect when the resulting session_update arrives.

New sessions are matched against pending placeholders by name, which is
the correlation key the UI recorded when it asked for the session.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from . import protocol
from .errors import ProtocolError
from .logging_config import get_logger
from .placeholders import PlaceholderRegistry
from .types import ManagedSession, SessionStatus

logger = get_logger(__name__)

StatusListener = Callable[[ManagedSession, SessionStatus | None], None]


class SessionDirectory:
    """Caches ManagedSessions and applies authoritative events to them."""

    def __init__(
        self,
        send: Callable[[protocol.Message], None] | None = None,
        placeholders: PlaceholderRegistry | None = None,
    ) -> None:
        self._send = send
        self._placeholders = placeholders
        self._sessions: dict[str, ManagedSession] = {}
        self._listeners: list[StatusListener] = []

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> ManagedSession | None:
        return self._sessions.get(session_id)

    def all(self) -> list[ManagedSession]:
        return list(self._sessions.values())

    def visible(self) -> list[ManagedSession]:
        """Sessions shown in active views (everything not dismissed)."""
        return [s for s in self._sessions.values() if not s.dismissed]

    def by_name(self, name: str) -> ManagedSession | None:
        for session in self._sessions.values():
            if session.name == name:
                return session
        return None

    def add_listener(self, callback: StatusListener) -> None:
        """Call ``callback(session, previous_status)`` on every status change.

        previous_status is None for sessions seen for the first time.
        """
        self._listeners.append(callback)

    # --- Authoritative events ---

    def apply_update(self, payload: dict[str, Any]) -> ManagedSession:
        """Upsert one session from a session_update / session_created payload.

        Any status may follow any other; the server is the authority.
        """
        session = ManagedSession.from_dict(payload)
        previous = self._sessions.get(session.id)
        self._sessions[session.id] = session

        if previous is None:
            self._resolve_placeholder(session)
            self._notify(session, None)
        elif previous.status is not session.status:
            logger.debug("Session %s: %s -> %s", session.id, previous.status.value, session.status.value)
            self._notify(session, previous.status)
        return session

    def apply_snapshot(self, payloads: Iterable[dict[str, Any]]) -> list[ManagedSession]:
        """Replace the cache with the server's full session list.

        Returns the sessions that went from working to idle, i.e. the ones
        that just finished something and may want attention. Malformed
        entries are logged and left out.
        """
        sessions = []
        for payload in payloads:
            try:
                sessions.append(ManagedSession.from_dict(payload))
            except ProtocolError as e:
                logger.warning("Skipping malformed session in snapshot: %s", e)
        previous = self._sessions
        self._sessions = {s.id: s for s in sessions}

        newly_idle = []
        for session in sessions:
            before = previous.get(session.id)
            if before is None:
                self._resolve_placeholder(session)
                self._notify(session, None)
                continue
            if before.status is session.status:
                continue
            self._notify(session, before.status)
            if before.status is SessionStatus.WORKING and session.status is SessionStatus.IDLE:
                newly_idle.append(session)

        removed = set(previous) - set(self._sessions)
        if removed:
            logger.info("Sessions gone from server: %s", ", ".join(sorted(removed)))
        return newly_idle

    def _resolve_placeholder(self, session: ManagedSession) -> None:
        if self._placeholders is None or not session.name:
            return
        self._placeholders.resolve(session.name, session.id, session.zone_position)

    def _notify(self, session: ManagedSession, previous: SessionStatus | None) -> None:
        for callback in list(self._listeners):
            try:
                callback(session, previous)
            except Exception:
                logger.exception("Session listener failed")

    # --- Requests (routed through the server) ---

    def reactivate(self, session_id: str) -> None:
        """Ask the server to bring a dismissed session back. Status is unchanged locally."""
        self._request(protocol.SESSION_REACTIVATE, session_id)

    def dismiss(self, session_id: str) -> None:
        """Ask the server to dismiss a session. Status is unchanged locally."""
        self._request(protocol.SESSION_DISMISS, session_id)

    def _request(self, action_type: str, session_id: str) -> None:
        if session_id not in self._sessions:
            raise KeyError(session_id)
        if self._send is None:
            raise RuntimeError("SessionDirectory has no send function")
        self._send(protocol.session_action(action_type, session_id))
