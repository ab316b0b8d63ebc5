"""Tests for wire message helpers and inbound validation."""

import pytest

from termmux import protocol
from termmux.errors import ProtocolError


class TestBuilders:
    def test_subscribe(self):
        assert protocol.subscribe("pty", "s1") == {"type": "pty:subscribe", "sessionId": "s1"}

    def test_subscribe_with_cwd(self):
        msg = protocol.subscribe("shell", "shell-1", cwd="/tmp")
        assert msg == {"type": "shell:subscribe", "sessionId": "shell-1", "cwd": "/tmp"}

    def test_unsubscribe_pty(self):
        assert protocol.unsubscribe("pty", "s1")["type"] == "pty:unsubscribe"

    def test_unsubscribe_shell_is_close(self):
        assert protocol.unsubscribe("shell", "shell-1")["type"] == "shell:close"

    def test_resize(self):
        assert protocol.resize("pty", "s1", 80, 24) == {"type": "pty:resize", "sessionId": "s1", "cols": 80, "rows": 24}

    def test_session_action(self):
        assert protocol.session_action(protocol.SESSION_DISMISS, "a") == {"type": "session:dismiss", "sessionId": "a"}


class TestSplitType:
    def test_namespaced(self):
        assert protocol.split_type("pty:output") == ("pty", "output")

    def test_plain(self):
        assert protocol.split_type("sessions") == ("", "sessions")


class TestIsSubscriptionControl:
    @pytest.mark.parametrize("msg_type", ["pty:subscribe", "pty:unsubscribe", "shell:subscribe", "shell:unsubscribe"])
    def test_control(self, msg_type):
        assert protocol.is_subscription_control({"type": msg_type})

    @pytest.mark.parametrize("msg_type", ["pty:input", "pty:resize", "shell:close", "session:dismiss", "sessions"])
    def test_not_control(self, msg_type):
        assert not protocol.is_subscription_control({"type": msg_type})


class TestValidateInbound:
    def test_valid_output(self):
        msg = {"type": "pty:output", "sessionId": "s1", "data": "x"}
        assert protocol.validate_inbound(msg) is msg

    def test_exit_without_data_ok(self):
        protocol.validate_inbound({"type": "pty:exit", "sessionId": "s1", "exitCode": 0})

    def test_unknown_type_passes(self):
        protocol.validate_inbound({"type": "hello"})

    @pytest.mark.parametrize(
        "msg",
        [
            "not a dict",
            {},
            {"type": ""},
            {"type": "pty:output", "data": "x"},
            {"type": "shell:buffer", "sessionId": 3, "data": "x"},
            {"type": "pty:output", "sessionId": "s1", "data": 42},
            {"type": "sessions", "payload": {}},
            {"type": "session_update", "payload": []},
            {"type": "session_created"},
        ],
    )
    def test_malformed(self, msg):
        with pytest.raises(ProtocolError):
            protocol.validate_inbound(msg)
