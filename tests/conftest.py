"""Shared test doubles

FakeConnection stands in for a websockets client connection: it is async
iterable over inbound messages, records what is sent, and ends iteration when
the "host" hangs up or the connection is closed.
"""

import asyncio

import pytest


_HANG_UP = object()


class FakeConnection:
    """In-memory websocket connection"""

    def __init__(self):
        self.inbound = asyncio.Queue()
        self.sent = []
        self.closed = False

    def push(self, message):
        """Deliver a message as if the host had sent it"""
        self.inbound.put_nowait(message)

    def hang_up(self):
        """End the inbound stream as if the host disconnected"""
        self.inbound.put_nowait(_HANG_UP)

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.inbound.get()
        if item is _HANG_UP:
            raise StopAsyncIteration
        return item

    async def send(self, data):
        if self.closed:
            raise OSError("connection closed")
        self.sent.append(data)

    async def close(self):
        if not self.closed:
            self.closed = True
            self.inbound.put_nowait(_HANG_UP)

    async def wait_sent(self, count, timeout=1.0):
        """Wait until at least `count` messages were sent"""
        async def _wait():
            while len(self.sent) < count:
                await asyncio.sleep(0.001)
        await asyncio.wait_for(_wait(), timeout)


def connector_for(connection):
    """Connector coroutine function always returning `connection`"""
    async def connector(url):
        connector.urls.append(url)
        return connection
    connector.urls = []
    return connector


def refusing_connector():
    """Connector that always fails like an unreachable host"""
    async def connector(url):
        raise ConnectionRefusedError(111, "Connection refused")
    return connector


@pytest.fixture
def clean_env(monkeypatch):
    """Remove SPOTTER_* variables so defaults apply"""
    for name in (
        "SPOTTER_URL",
        "SPOTTER_WIRE_FORMAT",
        "SPOTTER_HANDLER_TIMEOUT",
        "SPOTTER_RETIRED_GENERATIONS",
        "SPOTTER_HISTORY_PATH",
        "SPOTTER_WINDOW_COMMAND",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
