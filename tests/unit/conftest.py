"""Fixtures for WebSocket core unit tests: an in-memory transport and helpers."""

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from echohub.api.websocket import Connection, ConnectionRegistry, Dispatcher
from echohub.domain.exceptions import TransportException


class FakeTransport:
    """In-memory Transport: inbound frames are fed by the test, sent frames are recorded.

    ``gate`` blocks every send while cleared, which simulates a client that
    stopped reading.
    """

    def __init__(self, remote_address: str = "127.0.0.1:50000") -> None:
        self.remote_address = remote_address
        self.sent: list[str | bytes] = []
        self.closed_with: tuple[int, str] | None = None
        self.close_calls = 0
        self.fail_sends = False
        self.gate = asyncio.Event()
        self.gate.set()
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()

    async def receive(self) -> str | bytes | None:
        item = await self._inbound.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def send(self, frame: str | bytes) -> None:
        await self.gate.wait()
        if self.fail_sends:
            raise TransportException("connection reset by peer")
        self.sent.append(frame)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.close_calls += 1
        self.closed_with = (code, reason)

    def feed(self, frame: str | bytes) -> None:
        self._inbound.put_nowait(frame)

    def feed_json(self, message: dict[str, Any]) -> None:
        self.feed(json.dumps(message))

    def disconnect(self) -> None:
        self._inbound.put_nowait(None)

    def break_stream(self) -> None:
        self._inbound.put_nowait(TransportException("stream reset"))

    def stall(self) -> None:
        self.gate.clear()

    def messages(self) -> list[dict[str, Any]]:
        """Sent text frames decoded as JSON."""
        return [json.loads(frame) for frame in self.sent if isinstance(frame, str)]

    async def wait_sent(self, count: int, timeout: float = 1.0) -> None:
        async def _poll() -> None:
            while len(self.sent) < count:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout=timeout)


OpenConnection = Callable[..., tuple[Connection, FakeTransport]]


@pytest.fixture
def make_transport() -> Callable[..., FakeTransport]:
    return FakeTransport


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry(max_queue_size=8, close_timeout=0.2)


@pytest.fixture
def dispatcher(registry: ConnectionRegistry) -> Dispatcher:
    return Dispatcher(registry, max_message_bytes=1024)


@pytest.fixture
async def open_connection(registry: ConnectionRegistry) -> AsyncIterator[OpenConnection]:
    """Factory: create, open, register and (by default) start a connection.

    Every connection is aborted at teardown so no writer task outlives the test.
    """
    created: list[Connection] = []

    def _open(
        *,
        max_queue_size: int | None = None,
        connection_id: str | None = None,
        start: bool = True,
    ) -> tuple[Connection, FakeTransport]:
        transport = FakeTransport()
        connection = Connection(
            transport,
            connection_id=connection_id,
            max_queue_size=max_queue_size or registry.max_queue_size,
            close_timeout=registry.close_timeout,
        )
        connection.open()
        registry.register(connection)
        if start:
            connection.start()
        created.append(connection)
        return connection, transport

    yield _open
    for connection in created:
        connection.abort()
    await asyncio.wait_for(
        asyncio.gather(*(connection.wait_closed() for connection in created)), timeout=1.0
    )
