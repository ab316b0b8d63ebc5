"""Tests for the connection reconciler (termmux/connection.py)."""

import pytest

from termmux.connection import ConnectionReconciler
from termmux.mux import ChannelMultiplexer, ShellMultiplexer


@pytest.fixture
def wired(transport, surfaces, scheduler):
    """Reconciler with both multiplexers attached, initially disconnected."""
    reconciler = ConnectionReconciler(transport)
    terminals = ChannelMultiplexer(reconciler.send, surfaces, scheduler)
    shells = ShellMultiplexer(reconciler.send, surfaces, scheduler)
    reconciler.attach(terminals)
    reconciler.attach(shells)
    return reconciler, terminals, shells


class TestQueueing:
    def test_sends_when_connected(self, reconciler, transport):
        reconciler.on_connected()
        reconciler.send({"type": "pty:input", "sessionId": "a", "data": "x"})
        assert transport.sent == [{"type": "pty:input", "sessionId": "a", "data": "x"}]

    def test_queues_when_disconnected(self, reconciler, transport):
        reconciler.send({"type": "pty:input", "sessionId": "a", "data": "x"})
        assert transport.sent == []
        assert reconciler.queued == 1

    def test_flush_in_order_on_connect(self, reconciler, transport):
        for i in range(3):
            reconciler.send({"type": "pty:input", "sessionId": "a", "data": str(i)})
        reconciler.on_connected()
        assert [m["data"] for m in transport.sent] == ["0", "1", "2"]
        assert reconciler.queued == 0

    def test_max_queue_drops_oldest(self, transport):
        reconciler = ConnectionReconciler(transport, max_queue=2)
        for i in range(3):
            reconciler.send({"type": "pty:input", "sessionId": "a", "data": str(i)})
        assert reconciler.queued == 2
        reconciler.on_connected()
        assert [m["data"] for m in transport.sent] == ["1", "2"]

    def test_connect_without_transport(self):
        with pytest.raises(RuntimeError):
            ConnectionReconciler().on_connected()

    def test_bind(self, transport):
        reconciler = ConnectionReconciler()
        reconciler.bind(transport)
        reconciler.on_connected()
        reconciler.send({"type": "x"})
        assert transport.sent == [{"type": "x"}]


class TestResubscription:
    def test_channels_created_offline_subscribe_once(self, wired, transport):
        reconciler, terminals, _ = wired
        terminals.get_or_create("a")
        terminals.get_or_create("b")
        reconciler.on_connected()
        assert transport.of_type("pty:subscribe") == [
            {"type": "pty:subscribe", "sessionId": "a"},
            {"type": "pty:subscribe", "sessionId": "b"},
        ]

    def test_reconnect_resubscribes_each_live_channel_once(self, wired, transport):
        reconciler, terminals, shells = wired
        reconciler.on_connected()
        for sid in ("a", "b", "c"):
            terminals.get_or_create(sid)
        shells.create_shell()
        transport.clear()

        reconciler.on_disconnected()
        reconciler.on_connected()

        assert [m["sessionId"] for m in transport.of_type("pty:subscribe")] == ["a", "b", "c"]
        assert [m["sessionId"] for m in transport.of_type("shell:subscribe")] == ["shell-1"]

    def test_closed_while_offline_not_resubscribed(self, wired, transport):
        reconciler, terminals, _ = wired
        reconciler.on_connected()
        terminals.get_or_create("a")
        terminals.get_or_create("b")
        reconciler.on_disconnected()
        terminals.close("b")
        transport.clear()

        reconciler.on_connected()

        assert [m["sessionId"] for m in transport.of_type("pty:subscribe")] == ["a"]
        # The queued unsubscribe is superseded by the resubscription pass
        assert transport.of_type("pty:unsubscribe") == []

    def test_shell_closed_while_offline_still_torn_down(self, wired, transport):
        reconciler, _, shells = wired
        reconciler.on_connected()
        shells.create_shell()
        reconciler.on_disconnected()
        shells.close("shell-1")
        transport.clear()

        reconciler.on_connected()

        assert transport.of_type("shell:close") == [{"type": "shell:close", "sessionId": "shell-1"}]
        assert transport.of_type("shell:subscribe") == []

    def test_shell_created_and_closed_offline(self, wired, transport):
        reconciler, _, shells = wired
        shells.create_shell()
        shells.close("shell-1")

        reconciler.on_connected()

        assert [m["type"] for m in transport.sent] == ["shell:close"]

    def test_queued_input_flushed_after_resubscribe(self, wired, transport, surfaces):
        reconciler, terminals, _ = wired
        reconciler.on_connected()
        terminals.get_or_create("a")
        reconciler.on_disconnected()
        surfaces.surfaces["a"].type("ls\n")
        transport.clear()

        reconciler.on_connected()

        assert [m["type"] for m in transport.sent] == ["pty:subscribe", "pty:input"]

    def test_disconnect_keeps_channels(self, wired, surfaces):
        reconciler, terminals, _ = wired
        reconciler.on_connected()
        terminals.get_or_create("a")
        terminals.handle_message({"type": "pty:output", "sessionId": "a", "data": "hello"})
        reconciler.on_disconnected()
        assert "a" in terminals.channels
        assert surfaces.surfaces["a"].content == "hello"

    def test_attach_deduplicates(self, wired, transport):
        reconciler, terminals, _ = wired
        reconciler.attach(terminals)
        terminals.get_or_create("a")
        reconciler.on_connected()
        assert len(transport.of_type("pty:subscribe")) == 1


class TestListeners:
    def test_edges_reported(self, reconciler):
        edges = []
        reconciler.add_listener(edges.append)
        reconciler.on_connected()
        reconciler.on_disconnected()
        reconciler.on_disconnected()  # already down
        assert edges == [True, False]

    def test_failing_listener_does_not_block_others(self, reconciler):
        edges = []

        def boom(connected):
            raise ValueError("listener bug")

        reconciler.add_listener(boom)
        reconciler.add_listener(edges.append)
        reconciler.on_connected()
        assert edges == [True]
        assert reconciler.connected


class TestInbound:
    def test_on_message_calls_handler(self, transport):
        received = []
        reconciler = ConnectionReconciler(transport, message_handler=received.append)
        reconciler.on_message({"type": "x"})
        assert received == [{"type": "x"}]

    def test_on_message_without_handler(self, reconciler):
        reconciler.on_message({"type": "x"})  # dropped quietly

    def test_set_message_handler(self, reconciler):
        received = []
        reconciler.set_message_handler(received.append)
        reconciler.on_message({"type": "y"})
        assert received == [{"type": "y"}]
