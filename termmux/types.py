"""Type definitions shared across the multiplexer."""

from dataclasses import asdict, dataclass
from enum import Enum
import json
from typing import Any

from typing_extensions import Self

from .errors import ProtocolError


class SubscriptionStatus(str, Enum):
    """Where a channel stands with respect to its server-side subscription."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"
    DETACHED = "detached"
    EXITED = "exited"


class SessionStatus(str, Enum):
    """Lifecycle status of a managed session, as reported by the server."""

    IDLE = "idle"
    WORKING = "working"
    WAITING = "waiting"
    OFFLINE = "offline"
    DISMISSED = "dismissed"

    @classmethod
    def parse(cls, value: str) -> "SessionStatus":
        try:
            return cls(value)
        except ValueError:
            raise ProtocolError(f"unknown session status: {value!r}") from None


@dataclass
class ManagedSession:
    """A server-tracked session, cached locally."""

    id: str
    name: str = ""
    status: SessionStatus = SessionStatus.IDLE
    last_activity: float = 0.0  # epoch milliseconds
    tmux_session: str = ""  # also used as the PTY channel id
    created_at: float = 0.0
    cwd: str | None = None
    current_tool: str | None = None
    agent_session_id: str | None = None  # linked agent session, may differ from id
    zone_position: dict[str, Any] | None = None  # server-persisted layout hint

    @property
    def dismissed(self) -> bool:
        return self.status is SessionStatus.DISMISSED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, data: str) -> Self:
        """Deserialize from JSON string, handling missing fields gracefully."""
        return cls.from_dict(json.loads(data))

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create from a server payload.

        Accepts both the wire's camelCase keys and our snake_case keys.
        Missing fields fall back to defaults; an unknown status is rejected.
        """
        if not isinstance(data, dict) or not data.get("id"):
            raise ProtocolError("session payload without id")

        def pick(*keys: str, default: Any = None) -> Any:
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        def timestamp(*keys: str) -> float:
            value = pick(*keys, default=0.0)
            try:
                return float(value)
            except (TypeError, ValueError):
                raise ProtocolError(f"{keys[-1]} is not a number: {value!r}") from None

        return cls(
            id=str(data["id"]),
            name=pick("name", default=""),
            status=SessionStatus.parse(pick("status", default="idle")),
            last_activity=timestamp("last_activity", "lastActivity"),
            tmux_session=pick("tmux_session", "tmuxSession", default=""),
            created_at=timestamp("created_at", "createdAt"),
            cwd=pick("cwd"),
            current_tool=pick("current_tool", "currentTool"),
            agent_session_id=pick("agent_session_id", "claudeSessionId"),
            zone_position=pick("zone_position", "zonePosition"),
        )
