from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

from spire.core.security import encrypt_secret
from spire.services.log_stream import (
    STREAM_ENDED_MARKER,
    LogBuffer,
    ServerLogStream,
    _parse_message,
    backoff_delays,
    socket_url,
)


class FakeSocket:
    def __init__(self, messages, error=None):
        self.messages = messages
        self.error = error
        self.sent = []

    async def send(self, message):
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.error is not None:
            raise self.error


class FakeConnect:
    """Replays one scripted session per connect; exceptions fail the handshake."""

    def __init__(self, sessions):
        self.sessions = list(sessions)
        self.calls = []

    def __call__(self, url, additional_headers=None):
        self.calls.append((url, additional_headers))
        return _Session(self.sessions.pop(0))


class _Session:
    def __init__(self, session):
        self.session = session

    async def __aenter__(self):
        if isinstance(self.session, Exception):
            raise self.session
        return self.session

    async def __aexit__(self, *exc):
        return False


class FakeHistoryClient:
    def __init__(self, lines):
        self.lines = lines

    async def container_logs(self, node, container_id):
        return self.lines


def log(line):
    return json.dumps({"event": "log", "data": line})


def make_stream(sessions, history=(), buffer=None):
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append(delay)

    node = SimpleNamespace(name="n1", connection_url="http://n1:3000", secret_encrypted=encrypt_secret("s"))
    server = SimpleNamespace(id="c1", node=node)
    connect = FakeConnect(sessions)
    stream = ServerLogStream(
        server,
        FakeHistoryClient(list(history)),
        connect=connect,
        sleep=fake_sleep,
        delays=backoff_delays(5, 3000),
        buffer=buffer,
    )
    return stream, connect, sleeps


def collect(agen):
    async def _run():
        return [line async for line in agen]
    return asyncio.run(_run())


def test_backoff_doubles_from_initial_delay():
    assert backoff_delays(5, 3000) == [3.0, 6.0, 12.0, 24.0, 48.0]
    assert backoff_delays(0, 3000) == []


def test_socket_url():
    assert socket_url("http://n1:3000") == "ws://n1:3000/ws"
    assert socket_url("https://n1.example.com/") == "wss://n1.example.com/ws"


def test_parse_message():
    assert _parse_message(log("hello")) == "hello"
    assert _parse_message(json.dumps({"event": "log", "line": "alt"})) == "alt"
    assert _parse_message("plain text") == "plain text"
    assert _parse_message(b"bytes line") == "bytes line"
    assert _parse_message(json.dumps({"event": "end"})) == STREAM_ENDED_MARKER
    assert _parse_message(json.dumps({"event": "stats", "data": {}})) is None


def test_buffer_drops_consecutive_duplicates():
    buffer = LogBuffer(max_lines=3)
    assert buffer.extend(["a", "a", "b", "a", "c", "d"]) == ["a", "b", "a", "c", "d"]
    assert buffer.append("d\r\n") is False
    assert buffer.lines == ["a", "c", "d"]


def test_history_then_live_with_reconnect():
    stream, connect, sleeps = make_stream(
        [
            FakeSocket([log("a"), log("b")], ConnectionClosedError(None, None)),
            FakeSocket([log("b"), log("c")]),
        ],
        history=["h1", "h2"],
    )

    assert collect(stream.lines()) == ["h1", "h2", "a", "b", "c"]
    assert sleeps == [3.0]
    url, headers = connect.calls[0]
    assert url == "ws://n1:3000/ws"
    assert headers == {"Authorization": "Bearer s"}


def test_subscribes_to_the_server():
    socket = FakeSocket([log("x")])
    stream, _, _ = make_stream([socket])
    collect(stream.live())
    assert socket.sent == [{"event": "subscribe-logs", "serverId": "c1"}]


def test_clean_close_stops_without_marker():
    stream, _, sleeps = make_stream([FakeSocket([log("a")], ConnectionClosedOK(None, None))])
    assert collect(stream.live()) == ["a"]
    assert sleeps == []


def test_exhausted_reconnects_emit_single_marker():
    buffer = LogBuffer()
    stream, connect, sleeps = make_stream([OSError("refused")] * 6, buffer=buffer)

    assert collect(stream.live()) == [STREAM_ENDED_MARKER]
    assert sleeps == [3.0, 6.0, 12.0, 24.0, 48.0]
    assert len(connect.calls) == 6

    again, _, _ = make_stream([OSError("refused")] * 6, buffer=buffer)
    assert collect(again.live()) == []
    assert buffer.lines == [STREAM_ENDED_MARKER]


def test_attempts_reset_after_a_line_arrives():
    stream, _, sleeps = make_stream([
        OSError("refused"),
        FakeSocket([log("x")], ConnectionClosedError(None, None)),
        OSError("refused"),
        FakeSocket([]),
    ])
    assert collect(stream.live()) == ["x"]
    assert sleeps == [3.0, 3.0, 6.0]
