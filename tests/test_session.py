"""Tests for the chat session controller."""
import asyncio

import pytest

from chat_fakes import FakeConnection, FakeServer
from client.session import (
    ChatSession, parse_port, split_address, PM_USAGE,
    STATE_CONNECTED, STATE_CONNECTING, STATE_DISCONNECTED, STATE_DISCONNECTING,
)
from shared.errors import ConnectError


class FakeClock:
    def __init__(self, now=100.0):
        self.now = now

    def __call__(self):
        return self.now


class Harness:
    """A ChatSession wired to a FakeConnection and recording its callbacks."""

    def __init__(self, fail_types=()):
        self.lines = []
        self.states = []
        self.errors = []
        self.clock = FakeClock()
        self.connections = []
        self.fail_types = set(fail_types)
        self.session = ChatSession(
            on_chat_line=self.lines.append,
            on_state_change=self.states.append,
            on_error=self.errors.append,
            clock=self.clock,
            connection_factory=self._factory,
        )

    def _factory(self, **kwargs):
        conn = FakeConnection(**kwargs)
        conn.fail_types = self.fail_types
        self.connections.append(conn)
        return conn

    @property
    def conn(self) -> FakeConnection:
        return self.connections[-1]

    def sent_types(self):
        return [env.type for env in self.conn.sent]


def _connected(h: Harness):
    asyncio.run(h.session.connect("chat.example:5000", "alice"))
    return h


def test_parse_port():
    assert parse_port("5000") == 5000
    assert parse_port(" 80 ") == 80
    for bad in ("", "abc", "0", "70000", "-1"):
        with pytest.raises(ConnectError):
            parse_port(bad)


def test_split_address():
    assert split_address("localhost:5000") == ("localhost", "5000")
    assert split_address("[::1]:5000") == ("::1", "5000")
    with pytest.raises(ConnectError):
        split_address("localhost")


def test_blank_username_rejected_before_io():
    h = Harness()
    with pytest.raises(ConnectError):
        asyncio.run(h.session.connect("localhost:5000", "   "))
    assert h.connections == []
    assert h.errors == ["Username is required"]
    assert h.session.state == STATE_DISCONNECTED


def test_bad_port_rejected_before_io():
    h = Harness()
    with pytest.raises(ConnectError):
        asyncio.run(h.session.connect_to("localhost", "port", "alice"))
    assert h.connections == []
    assert h.states == []


def test_connect_sends_join_then_starts_reading():
    h = _connected(Harness())
    assert h.conn.events == ["connect:chat.example:5000", "send:join", "start_reading"]
    assert h.conn.sent[0].sender == "alice"
    assert h.states == [STATE_CONNECTING, STATE_CONNECTED]
    assert h.lines == ["[system] Connected"]
    assert h.session.is_connected


def test_connect_while_connected_rejected():
    h = _connected(Harness())
    with pytest.raises(ConnectError):
        asyncio.run(h.session.connect("other:5000", "alice"))
    assert len(h.connections) == 1


def test_failed_join_returns_to_disconnected():
    h = Harness(fail_types={"join"})
    with pytest.raises(ConnectError):
        asyncio.run(h.session.connect("chat.example:5000", "alice"))
    assert h.states == [STATE_CONNECTING, STATE_DISCONNECTED]
    assert h.conn.events[-1] == "close"
    assert len(h.errors) == 1


def test_send_plain_message():
    h = _connected(Harness())
    assert asyncio.run(h.session.send("  hello world  "))
    assert h.conn.sent[-1].type == "msg"
    assert h.conn.sent[-1].text == "hello world"


def test_send_blank_is_noop():
    h = _connected(Harness())
    assert not asyncio.run(h.session.send("   "))
    assert h.sent_types() == ["join"]


def test_send_when_disconnected_is_noop():
    h = Harness()
    assert not asyncio.run(h.session.send("hello"))
    assert h.lines == []


def test_private_message_prefix():
    h = _connected(Harness())
    assert asyncio.run(h.session.send("/w alice hello there"))
    pm = h.conn.sent[-1]
    assert pm.type == "pm"
    assert pm.to == "alice"
    assert pm.text == "hello there"


def test_private_message_without_body_shows_usage():
    h = _connected(Harness())
    assert not asyncio.run(h.session.send("/w alice"))
    assert h.sent_types() == ["join"]
    assert h.lines[-1] == f"[system] {PM_USAGE}"


def test_send_private_command():
    h = _connected(Harness())
    assert asyncio.run(h.session.send_private("bob", "hi"))
    assert (h.conn.sent[-1].type, h.conn.sent[-1].to) == ("pm", "bob")
    assert not asyncio.run(h.session.send_private("", "hi"))
    assert h.lines[-1] == f"[system] {PM_USAGE}"


def test_failed_user_send_is_surfaced():
    h = _connected(Harness(fail_types={"msg"}))
    assert not asyncio.run(h.session.send("hello"))
    assert h.lines[-1].startswith("[system] Send failed:")
    assert h.session.state == STATE_CONNECTED


def test_typing_throttle_leading_edge():
    h = _connected(Harness())

    async def burst():
        results = []
        for i in range(10):
            h.clock.now = 100.0 + i * 0.09
            results.append(await h.session.notify_typing())
        return results

    results = asyncio.run(burst())
    assert results[0] is True
    assert not any(results[1:])
    assert h.sent_types().count("typing") == 1
    assert h.conn.sent[-1].text == "alice is typing..."

    h.clock.now = 100.0 + 1.1
    assert asyncio.run(h.session.notify_typing())
    assert h.sent_types().count("typing") == 2


def test_typing_send_failure_swallowed():
    h = _connected(Harness(fail_types={"typing"}))
    assert asyncio.run(h.session.notify_typing())
    assert h.lines == ["[system] Connected"]


def test_typing_when_disconnected_sends_nothing():
    h = Harness()
    assert not asyncio.run(h.session.notify_typing())


def test_disconnect_ordering():
    h = _connected(Harness())
    asyncio.run(h.session.disconnect())
    assert h.conn.events[-3:] == ["stop_reading", "send:leave", "close"]
    assert h.states[-2:] == [STATE_DISCONNECTING, STATE_DISCONNECTED]
    assert not h.session.is_connected


def test_disconnect_completes_when_leave_fails():
    h = _connected(Harness(fail_types={"leave"}))
    asyncio.run(h.session.disconnect())
    assert h.conn.events[-3:] == ["stop_reading", "send:leave", "close"]
    assert h.session.state == STATE_DISCONNECTED
    assert h.errors == []


def test_disconnect_when_idle_is_harmless():
    h = Harness()
    asyncio.run(h.session.disconnect())
    assert h.session.state == STATE_DISCONNECTED
    assert h.states == []


def test_stale_connection_callbacks_ignored():
    h = _connected(Harness())
    old = h.conn
    asyncio.run(h.session.disconnect())
    old.on_lost(None)
    old.on_closed()
    assert "[system] Disconnected by server" not in h.lines
    assert h.states.count(STATE_DISCONNECTED) == 1


def test_connection_lost_resets_to_disconnected():
    h = _connected(Harness())
    h.conn.on_lost(ConnectionResetError("reset by peer"))
    h.conn.on_closed()
    assert h.lines[-1] == "[system] Connection lost: reset by peer"
    assert h.session.state == STATE_DISCONNECTED
    assert h.states[-1] == STATE_DISCONNECTED
    # reconnect is allowed afterwards
    asyncio.run(h.session.connect("chat.example:5000", "alice"))
    assert h.session.is_connected
    assert len(h.connections) == 2


def test_end_to_end_with_loopback_server(tmp_path):
    from shared.chat_log import ChatLog

    async def run():
        lines, users, states = [], [], []
        server = await FakeServer().start()
        log = ChatLog(tmp_path / "chat_log.txt")
        session = ChatSession(
            chat_log=log,
            on_chat_line=lines.append,
            on_user_list=users.append,
            on_state_change=states.append,
        )
        await session.connect(f"127.0.0.1:{server.port}", "alice")
        join = await server.next_message()
        assert (join["type"], join["from"]) == ("join", "alice")

        await server.push({"type": "userlist", "users": ["alice", "bob"]})
        await server.push({"type": "sys", "text": "bob joined"})
        await server.push({"type": "nonsense"})
        await session.send("/w bob hey")
        pm = await server.next_message()
        assert (pm["type"], pm["to"], pm["text"]) == ("pm", "bob", "hey")

        for _ in range(100):
            if len(lines) >= 3:
                break
            await asyncio.sleep(0.01)
        assert users == [["alice", "bob"]]
        assert lines[1:3] == ["[system] bob joined", '[unknown] {"type":"nonsense"}']

        await session.disconnect()
        leave = await server.next_message()
        assert leave["type"] == "leave"
        await asyncio.wait_for(server.client_gone.wait(), 2.0)
        await server.stop()
        return lines, states, log.read_lines()

    lines, states, logged = asyncio.run(run())
    assert states == [STATE_CONNECTING, STATE_CONNECTED, STATE_DISCONNECTING, STATE_DISCONNECTED]
    assert logged == ["[system] bob joined"]


def test_server_drop_reported_once():
    async def run():
        lines, states = [], []
        server = await FakeServer().start()
        session = ChatSession(on_chat_line=lines.append, on_state_change=states.append)
        await session.connect(f"127.0.0.1:{server.port}", "alice")
        await server.next_message()
        await server.drop_client()
        for _ in range(200):
            if session.state == STATE_DISCONNECTED:
                break
            await asyncio.sleep(0.01)
        await server.stop()
        return lines, states

    lines, states = asyncio.run(run())
    assert lines.count("[system] Disconnected by server") == 1
    assert states[-1] == STATE_DISCONNECTED
