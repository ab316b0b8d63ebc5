"""A single multiplexed channel: one session id bound to one surface."""

from __future__ import annotations

from datetime import datetime

from .logging_config import get_logger
from .scheduler import TimerHandle
from .surface import Surface
from .types import SubscriptionStatus

logger = get_logger(__name__)

DETACHED_NOTICE = (
    "\r\n\x1b[93m[Detached from tmux - tmux session still running]\x1b[0m\r\n"
    "\x1b[90m[Press any key to reattach...]\x1b[0m\r\n"
)
EXIT_NOTICE = "\r\n\x1b[90m[Session ended with code {code}]\x1b[0m\r\n"


class Channel:
    """An interactive surface bound to a session id.

    Owns its surface exclusively and the refit timers scheduled against it,
    so disposing the channel cancels anything still pending.
    """

    def __init__(self, session_id: str, surface: Surface):
        self.session_id = session_id
        self.surface = surface
        self.status = SubscriptionStatus.UNSUBSCRIBED
        self.exit_code: int | None = None
        self.loading = True
        self.disposed = False
        self.created = datetime.now().isoformat()
        self._timers: list[TimerHandle] = []

        self.surface.set_loading(True)

    def mark_subscribing(self) -> None:
        """A subscribe was sent. Detached/exited channels become live again on resubscribe."""
        self.status = SubscriptionStatus.SUBSCRIBING

    def write(self, data: str) -> None:
        """Apply output or replayed buffer. The first one confirms the subscription."""
        if self.loading:
            self.loading = False
            self.surface.set_loading(False)
        if self.status in (SubscriptionStatus.UNSUBSCRIBED, SubscriptionStatus.SUBSCRIBING):
            self.status = SubscriptionStatus.ACTIVE
        if data:
            self.surface.write(data)

    def detach(self) -> None:
        self.status = SubscriptionStatus.DETACHED
        self.surface.write(DETACHED_NOTICE)
        logger.info("Channel %s: detached (remote process still running)", self.session_id)

    def exit(self, exit_code: int | None) -> None:
        self.status = SubscriptionStatus.EXITED
        self.exit_code = exit_code
        self.surface.write(EXIT_NOTICE.format(code=exit_code))
        logger.info("Channel %s: exited (code %s)", self.session_id, exit_code)

    # --- Timers ---

    def track_timer(self, handle: TimerHandle) -> None:
        self._timers = [t for t in self._timers if not t.cancelled()]
        self._timers.append(handle)

    def cancel_timers(self) -> None:
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()

    def refit(self) -> None:
        """Recompute surface dimensions. No-op once disposed."""
        if self.disposed:
            return
        try:
            self.surface.fit()
        except Exception as e:
            # Layout may not be ready yet; a later retry will catch it
            logger.debug("Channel %s: fit failed: %s", self.session_id, e)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self.cancel_timers()
        self.surface.dispose()

    def __repr__(self) -> str:
        return f"Channel({self.session_id!r}, {self.status.value})"
