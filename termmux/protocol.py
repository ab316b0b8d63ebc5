"""Wire messages exchanged with the server.

Every message is a JSON object with a "type" field. Channel messages are
namespaced by channel kind: "pty:*" for session terminals and "shell:*" for
standalone shells. Session directory events carry their data under "payload".
"""

from __future__ import annotations

from typing import Any

from .errors import ProtocolError

PTY = "pty"
SHELL = "shell"
NAMESPACES = (PTY, SHELL)

# Inbound channel kinds (suffix after the namespace)
OUTPUT = "output"
BUFFER = "buffer"
DETACHED = "detached"
EXIT = "exit"
CHANNEL_KINDS = frozenset({OUTPUT, BUFFER, DETACHED, EXIT})

# Outbound channel kinds
SUBSCRIBE = "subscribe"
UNSUBSCRIBE = "unsubscribe"
CLOSE = "close"
INPUT = "input"
RESIZE = "resize"
# Skipped when flushing after reconnect; shell:close kills a process and is always flushed
SUBSCRIPTION_KINDS = frozenset({SUBSCRIBE, UNSUBSCRIBE})

# Session directory events
SESSIONS = "sessions"
SESSION_UPDATE = "session_update"
SESSION_CREATED = "session_created"
SESSION_REACTIVATE = "session:reactivate"
SESSION_DISMISS = "session:dismiss"

Message = dict[str, Any]


def split_type(msg_type: str) -> tuple[str, str]:
    """Split "pty:output" into ("pty", "output"). Non-namespaced types get ""."""
    namespace, sep, kind = msg_type.partition(":")
    if not sep:
        return "", msg_type
    return namespace, kind


def subscribe(namespace: str, session_id: str, cwd: str | None = None) -> Message:
    msg: Message = {"type": f"{namespace}:{SUBSCRIBE}", "sessionId": session_id}
    if cwd:
        msg["cwd"] = cwd
    return msg


def unsubscribe(namespace: str, session_id: str) -> Message:
    # Shells are torn down server-side on close rather than just unsubscribed
    kind = CLOSE if namespace == SHELL else UNSUBSCRIBE
    return {"type": f"{namespace}:{kind}", "sessionId": session_id}


def input_data(namespace: str, session_id: str, data: str) -> Message:
    return {"type": f"{namespace}:{INPUT}", "sessionId": session_id, "data": data}


def resize(namespace: str, session_id: str, cols: int, rows: int) -> Message:
    return {"type": f"{namespace}:{RESIZE}", "sessionId": session_id, "cols": cols, "rows": rows}


def session_action(action_type: str, session_id: str) -> Message:
    return {"type": action_type, "sessionId": session_id}


def is_subscription_control(msg: Message) -> bool:
    """True for subscribe/unsubscribe messages of any channel namespace."""
    namespace, kind = split_type(str(msg.get("type", "")))
    return namespace in NAMESPACES and kind in SUBSCRIPTION_KINDS


def validate_inbound(msg: Any) -> Message:
    """Check the fields a message needs before it is routed.

    Raises ProtocolError for anything that cannot be dispatched.
    """
    if not isinstance(msg, dict):
        raise ProtocolError(f"message is not an object: {type(msg).__name__}")
    msg_type = msg.get("type")
    if not isinstance(msg_type, str) or not msg_type:
        raise ProtocolError("message without type")

    namespace, kind = split_type(msg_type)
    if namespace in NAMESPACES and kind in CHANNEL_KINDS:
        if not isinstance(msg.get("sessionId"), str):
            raise ProtocolError(f"{msg_type} without sessionId")
        data = msg.get("data")
        if data is not None and not isinstance(data, str):
            raise ProtocolError(f"{msg_type} data is not a string")
    elif msg_type == SESSIONS:
        if not isinstance(msg.get("payload"), list):
            raise ProtocolError("sessions payload is not a list")
    elif msg_type in (SESSION_UPDATE, SESSION_CREATED):
        if not isinstance(msg.get("payload"), dict):
            raise ProtocolError(f"{msg_type} payload is not an object")
    return msg
