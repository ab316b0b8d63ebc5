"""Tests for the placeholder registry (termmux/placeholders.py)."""

import pytest

from termmux.placeholders import PlaceholderRegistry


@pytest.fixture
def events():
    return []


@pytest.fixture
def registry(scheduler, events):
    return PlaceholderRegistry(
        scheduler,
        on_finalize=lambda sid, data: events.append(("finalize", sid, data)),
        on_remove_standin=lambda token: events.append(("remove", token)),
        on_expire=lambda p: events.append(("expire", p.correlation_key)),
    )


class TestRecord:
    def test_record(self, registry, scheduler):
        p = registry.record("refactor", {"q": 1, "r": 2}, cleanup_token="zone-1")
        assert "refactor" in registry
        assert len(registry) == 1
        assert registry.pending("refactor") is p
        assert p.deadline == scheduler.now() + 10.0

    def test_custom_ttl(self, registry):
        p = registry.record("k", None, ttl=2.5)
        assert p.deadline == 2.5

    def test_attach_cleanup_token(self, registry, events):
        registry.record("k", None)
        assert registry.attach_cleanup_token("k", "zone-9") is True
        registry.discard("k")
        assert events == [("remove", "zone-9")]

    def test_attach_cleanup_token_missing(self, registry):
        assert registry.attach_cleanup_token("nope", "zone") is False

    def test_rerecord_replaces(self, registry, scheduler, events):
        registry.record("k", "old", cleanup_token="zone-old")
        scheduler.advance(5.0)
        registry.record("k", "new", cleanup_token="zone-new")
        assert events == [("remove", "zone-old")]
        # The old deadline passes without touching the new placeholder
        scheduler.advance(5.001)
        assert "k" in registry
        scheduler.advance(5.0)
        assert "k" not in registry
        assert events[-2:] == [("remove", "zone-new"), ("expire", "k")]


class TestExpiry:
    def test_expires_after_ttl(self, registry, scheduler, events):
        registry.record("X", {"q": 0, "r": 0}, cleanup_token="zone-X")
        scheduler.advance(10.001)
        assert "X" not in registry
        assert events == [("remove", "zone-X"), ("expire", "X")]

        # A late authoritative event finds nothing
        assert registry.resolve("X", "sess-x") is None
        assert events == [("remove", "zone-X"), ("expire", "X")]

    def test_not_expired_before_deadline(self, registry, scheduler):
        registry.record("X", None)
        scheduler.advance(9.999)
        assert "X" in registry


class TestResolve:
    def test_resolve_before_deadline(self, registry, scheduler, events):
        registry.record("X", {"q": 3, "r": 4}, cleanup_token="zone-X")
        scheduler.advance(0.5)
        data = registry.resolve("X", "sess-x")
        assert data == {"q": 3, "r": 4}
        assert events == [("remove", "zone-X"), ("finalize", "sess-x", {"q": 3, "r": 4})]

        # Expiry no longer fires
        scheduler.advance(20.0)
        assert ("expire", "X") not in events
        assert scheduler.pending() == []

    def test_authoritative_data_wins(self, registry, events):
        registry.record("X", {"q": 3, "r": 4})
        data = registry.resolve("X", "sess-x", {"q": 9, "r": 9})
        assert data == {"q": 9, "r": 9}
        assert events[-1] == ("finalize", "sess-x", {"q": 9, "r": 9})

    def test_second_resolve_is_noop(self, registry, events):
        registry.record("X", "spec")
        registry.resolve("X", "sess-x")
        count = len(events)
        assert registry.resolve("X", "sess-x") is None
        assert len(events) == count

    def test_resolve_unknown(self, registry):
        assert registry.resolve("never", "sess") is None

    def test_no_callbacks(self, scheduler):
        registry = PlaceholderRegistry(scheduler)
        registry.record("X", "spec", cleanup_token="zone")
        assert registry.resolve("X", "sess") == "spec"
        registry.record("Y", "spec")
        scheduler.advance(11.0)
        assert len(registry) == 0


class TestDiscard:
    def test_discard(self, registry, scheduler, events):
        registry.record("X", None, cleanup_token="zone-X")
        assert registry.discard("X") is True
        assert events == [("remove", "zone-X")]
        scheduler.advance(20.0)
        assert events == [("remove", "zone-X")]

    def test_discard_unknown(self, registry):
        assert registry.discard("X") is False

    def test_cancel_all(self, registry, scheduler, events):
        registry.record("a", None, cleanup_token="za")
        registry.record("b", None, cleanup_token="zb")
        registry.cancel_all()
        assert registry.keys() == []
        assert events == [("remove", "za"), ("remove", "zb")]
        scheduler.advance(20.0)
        assert len(events) == 2
