"""Live server logs: one history fetch plus a reconnecting websocket feed."""

import asyncio
import json
import logging
from collections import deque
from typing import AsyncIterator, Awaitable, Callable, Iterable, List, Optional

import websockets
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidHandshake

from spire.core.config import settings
from spire.core.security import decrypt_secret
from spire.models.server import Server
from spire.services.glide_client import GlideClient

logger = logging.getLogger("spire.logs")

STREAM_ENDED_MARKER = "[stream ended]"


class LogBuffer:
    """Bounded live-line buffer.

    A line equal to the one before it is dropped, which also collapses runs
    of the stream-ended marker into one.
    """

    def __init__(self, max_lines: int = settings.LOG_BUFFER_LINES):
        self._lines: deque = deque(maxlen=max_lines)

    def append(self, line: str) -> bool:
        """Add ``line``; returns False when it was dropped as a duplicate."""
        line = line.rstrip("\r\n")
        if self._lines and self._lines[-1] == line:
            return False
        self._lines.append(line)
        return True

    def extend(self, lines: Iterable[str]) -> List[str]:
        return [line for line in lines if self.append(line)]

    @property
    def lines(self) -> List[str]:
        return list(self._lines)


def backoff_delays(
    attempts: int = settings.LOG_RECONNECT_ATTEMPTS,
    initial_ms: int = settings.LOG_RECONNECT_DELAY_MS,
) -> List[float]:
    """Reconnect delays in seconds: initial, doubled each attempt."""
    return [initial_ms * (2 ** i) / 1000 for i in range(attempts)]


def socket_url(connection_url: str) -> str:
    base = connection_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/ws"


def _parse_message(raw) -> Optional[str]:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        message = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(message, dict):
        if message.get("event") in ("end", "log-end"):
            return STREAM_ENDED_MARKER
        if message.get("event", "log") != "log":
            return None
        line = message.get("data", message.get("line"))
        return None if line is None else str(line)
    return str(message)


class ServerLogStream:
    """History plus live log lines of one server, reconnecting on abnormal close."""

    def __init__(
        self,
        server: Server,
        client: GlideClient,
        connect: Callable = websockets.connect,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
        delays: Optional[List[float]] = None,
        buffer: Optional[LogBuffer] = None,
    ):
        self.server = server
        self.client = client
        self.connect = connect
        self.sleep = sleep
        self.delays = delays if delays is not None else backoff_delays()
        self.buffer = buffer or LogBuffer()

    async def history(self) -> List[str]:
        lines = await self.client.container_logs(self.server.node, self.server.id)
        return [str(line) for line in lines or []]

    async def _subscribe(self) -> AsyncIterator[str]:
        node = self.server.node
        headers = {"Authorization": f"Bearer {decrypt_secret(node.secret_encrypted)}"}
        async with self.connect(socket_url(node.connection_url), additional_headers=headers) as ws:
            await ws.send(json.dumps({"event": "subscribe-logs", "serverId": self.server.id}))
            async for raw in ws:
                line = _parse_message(raw)
                if line is not None:
                    yield line

    async def live(self) -> AsyncIterator[str]:
        """Live lines until a clean close or the reconnect attempts run out."""
        attempt = 0
        while True:
            try:
                async for line in self._subscribe():
                    attempt = 0
                    if self.buffer.append(line):
                        yield line
                return
            except ConnectionClosedOK:
                return
            except (ConnectionClosedError, InvalidHandshake, OSError) as e:
                if attempt >= len(self.delays):
                    logger.error("Log stream for %s lost after %d attempts: %s", self.server.id, attempt, e)
                    if self.buffer.append(STREAM_ENDED_MARKER):
                        yield STREAM_ENDED_MARKER
                    return
                delay = self.delays[attempt]
                attempt += 1
                logger.warning(
                    "Log stream for %s dropped (%s); reconnect %d/%d in %.1fs",
                    self.server.id, e, attempt, len(self.delays), delay,
                )
                await self.sleep(delay)

    async def lines(self) -> AsyncIterator[str]:
        """History first, then live lines, with consecutive duplicates removed."""
        for line in self.buffer.extend(await self.history()):
            yield line
        async for line in self.live():
            yield line
