"""termmux — interactive session multiplexing and placeholder reconciliation."""

from .client import MuxClient
from .connection import ConnectionReconciler
from .errors import MountError, MuxError, ProtocolError, TransportError
from .mux import ChannelMultiplexer, ShellMultiplexer
from .placeholders import Placeholder, PlaceholderRegistry
from .sessions import SessionDirectory
from .types import ManagedSession, SessionStatus, SubscriptionStatus

__version__ = "0.1.0"

__all__ = [
    "MuxClient",
    "ConnectionReconciler",
    "ChannelMultiplexer",
    "ShellMultiplexer",
    "PlaceholderRegistry",
    "Placeholder",
    "SessionDirectory",
    "ManagedSession",
    "SessionStatus",
    "SubscriptionStatus",
    "MuxError",
    "MountError",
    "ProtocolError",
    "TransportError",
]
