"""Error types and transport failure classification.

Only two things ever reach a caller as an exception: a missing surface mount
target (MountError, from get_or_create) and malformed payloads at the
protocol boundary (ProtocolError, which the client logs and drops). Delivery
anomalies, detach/exit and placeholder expiry are handled where they happen.

Transport failures are classified so the reconnect loop can tell a server
that is briefly away from one that is refusing us outright.
"""

from dataclasses import dataclass


class MuxError(Exception):
    """Base class for multiplexer errors."""


class MountError(MuxError):
    """The UI layer has no container to mount a channel's surface in."""


class ProtocolError(MuxError):
    """An inbound message is missing required fields or carries bad values."""


class TransportError(MuxError):
    """The connection could not be established or was lost."""


@dataclass
class ErrorInfo:
    """Structured error classification."""

    fatal: bool  # Reconnecting will not help
    category: str  # "refused", "closed", "timeout", "handshake", "os", "unknown"
    text: str  # The error text for logging


def _handshake_status(error: Exception) -> int | None:
    """Pull an HTTP status code out of a rejected websocket handshake."""
    response = getattr(error, "response", None)
    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(error, "status_code", None)
    return status if isinstance(status, int) else None


def classify_exception(error: Exception) -> ErrorInfo:
    """Classify an exception raised by the transport.

    Returns structured info for logging and the retry decision.
    """
    from websockets.exceptions import ConnectionClosed, InvalidHandshake

    error_msg = str(error) or error.__class__.__name__

    if isinstance(error, InvalidHandshake):
        status = _handshake_status(error)
        # 4xx means the server understood us and said no
        fatal = status is not None and 400 <= status < 500
        return ErrorInfo(fatal=fatal, category="handshake", text=error_msg)
    if isinstance(error, ConnectionClosed):
        return ErrorInfo(fatal=False, category="closed", text=error_msg)
    if isinstance(error, ConnectionRefusedError):
        return ErrorInfo(fatal=False, category="refused", text=error_msg)
    if isinstance(error, TimeoutError):
        return ErrorInfo(fatal=False, category="timeout", text=error_msg)
    if isinstance(error, OSError):
        return ErrorInfo(fatal=False, category="os", text=error_msg)

    return ErrorInfo(fatal=False, category="unknown", text=error_msg)
