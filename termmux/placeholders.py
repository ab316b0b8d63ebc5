"""Placeholder reconciliation — optimistic UI state awaiting confirmation.

When the user asks for something the server has to create (a new session
anchored at some spot on screen), the UI shows a provisional stand-in right
away and records a placeholder here under a correlation key that will
reappear in the authoritative event (the session's name).

Each placeholder ends exactly one way:
  resolve()  — the authoritative entity arrived; its presentation is seeded
               from the speculative data and the stand-in is removed
  expiry     — the deadline passed with no match; stand-in removed
  discard()  — creation failed upstream; stand-in removed now

Whichever comes first removes the entry; the others find nothing and do
nothing. Membership in the registry is the only guard needed because all
of this runs on one event loop.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from .logging_config import get_logger
from .scheduler import LoopScheduler, Scheduler, TimerHandle

logger = get_logger(__name__)

DEFAULT_TTL = 10.0  # seconds; covers a creation round-trip with room to spare


@dataclass
class Placeholder:
    """A speculative entity waiting for its authoritative counterpart."""

    correlation_key: str
    speculative_data: Any
    deadline: float
    cleanup_token: str | None = None
    _timer: TimerHandle | None = field(default=None, repr=False, compare=False)


class PlaceholderRegistry:
    """Tracks placeholders by correlation key and resolves each exactly once.

    Callbacks (all optional):
        on_finalize(authoritative_id, data) — seed the real entity's presentation
        on_remove_standin(cleanup_token)    — drop the provisional UI object
        on_expire(placeholder)              — tell the UI nothing showed up in time
    """

    def __init__(
        self,
        scheduler: Scheduler | None = None,
        on_finalize: Callable[[str, Any], None] | None = None,
        on_remove_standin: Callable[[str], None] | None = None,
        on_expire: Callable[[Placeholder], None] | None = None,
        default_ttl: float = DEFAULT_TTL,
    ) -> None:
        self._scheduler = scheduler or LoopScheduler()
        self._on_finalize = on_finalize
        self._on_remove_standin = on_remove_standin
        self._on_expire = on_expire
        self.default_ttl = default_ttl
        self._pending: dict[str, Placeholder] = {}

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)

    def pending(self, key: str) -> Placeholder | None:
        return self._pending.get(key)

    def keys(self) -> list[str]:
        return list(self._pending)

    def record(
        self,
        key: str,
        speculative_data: Any,
        ttl: float | None = None,
        cleanup_token: str | None = None,
    ) -> Placeholder:
        """Create a placeholder that expires ``ttl`` seconds from now.

        Recording a key that is already live replaces the old placeholder
        (its timer is cancelled and its stand-in removed).
        """
        if key in self._pending:
            logger.debug("Placeholder %r re-recorded, replacing", key)
            self._remove(key)

        ttl = self.default_ttl if ttl is None else ttl
        placeholder = Placeholder(
            correlation_key=key,
            speculative_data=speculative_data,
            deadline=self._scheduler.now() + ttl,
            cleanup_token=cleanup_token,
        )
        placeholder._timer = self._scheduler.call_later(ttl, self._expire, key, placeholder)
        self._pending[key] = placeholder
        return placeholder

    def attach_cleanup_token(self, key: str, cleanup_token: str) -> bool:
        """Point a live placeholder at its stand-in. False if the key is gone."""
        placeholder = self._pending.get(key)
        if placeholder is None:
            return False
        placeholder.cleanup_token = cleanup_token
        return True

    def resolve(self, key: str, authoritative_id: str, authoritative_data: Any = None) -> Any:
        """Match a placeholder against the entity that confirms it.

        Presentation data is the authoritative data when the server has some
        (e.g. a saved layout position), else the speculative data. Returns
        that data, or None when there was nothing to resolve (already
        expired or already resolved; duplicate events land here).
        """
        placeholder = self._remove(key)
        if placeholder is None:
            return None

        data = authoritative_data if authoritative_data is not None else placeholder.speculative_data
        if self._on_finalize is not None:
            self._on_finalize(authoritative_id, data)
        logger.info("Placeholder %r resolved as %s", key, authoritative_id)
        return data

    def discard(self, key: str) -> bool:
        """Drop a placeholder whose creation failed upstream."""
        placeholder = self._remove(key)
        if placeholder is None:
            return False
        logger.info("Placeholder %r discarded", key)
        return True

    def cancel_all(self) -> None:
        """Drop every placeholder and its stand-in without expiry callbacks."""
        for key in list(self._pending):
            self._remove(key)

    def _remove(self, key: str) -> Placeholder | None:
        placeholder = self._pending.pop(key, None)
        if placeholder is None:
            return None
        if placeholder._timer is not None:
            placeholder._timer.cancel()
            placeholder._timer = None
        if placeholder.cleanup_token is not None and self._on_remove_standin is not None:
            self._on_remove_standin(placeholder.cleanup_token)
        return placeholder

    def _expire(self, key: str, placeholder: Placeholder) -> None:
        # A stale timer from a replaced placeholder must not touch the new one
        if self._pending.get(key) is not placeholder:
            return
        placeholder._timer = None
        self._remove(key)
        logger.info("Placeholder %r expired unconfirmed", key)
        if self._on_expire is not None:
            self._on_expire(placeholder)
