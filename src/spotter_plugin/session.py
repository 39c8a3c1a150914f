"""Transport Session - the single connection to the host

Owns the one websocket connection of a plugin process. Handles:

- Connecting once to the configured endpoint (no automatic retry)
- Delivering every inbound message, in arrival order, to one listener
- Best-effort sending through a writer task; sending without a connection
  is a silent no-op
- Surfacing connect-failed and disconnect events

Usage:
```python
session = TransportSession("ws://0.0.0.0:4040")
session.on_message(dispatcher.feed)
await session.connect()
await session.run()
```
"""

import asyncio
import sys
import traceback
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from spotter_plugin.codec import Codec, CodecError, JsonCodec
from spotter_plugin.envelope import Envelope


Message = Union[str, bytes]
Connector = Callable[[str], Awaitable[Any]]


class SessionError(Exception):
    """Base session error"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConnectFailure(SessionError):
    """The connection to the host could not be established"""

    def __init__(self, url: str, reason: BaseException):
        super().__init__(f"could not connect to {url}: {reason}")
        self.url = url
        self.reason = reason


class SessionClosed(SessionError):
    """Session was shut down"""

    def __init__(self):
        super().__init__("Session is closed")


class WriterCommand:
    """Commands sent to the writer task"""
    pass


@dataclass
class WriteMessage(WriterCommand):
    """Write one encoded message"""
    data: Message


@dataclass
class Shutdown(WriterCommand):
    """Shutdown the writer"""
    pass


async def _default_connector(url: str):
    return await connect(url)


class TransportSession:
    """Client side of the plugin <-> host connection"""

    def __init__(
        self,
        url: str,
        codec: Optional[Codec] = None,
        connector: Optional[Connector] = None,
    ):
        """Create an unconnected session

        Args:
            url: Host websocket endpoint
            codec: Wire codec (defaults to JsonCodec)
            connector: Coroutine function returning an open connection for a
                URL; defaults to the websockets client
        """
        self.url = url
        self.codec = codec if codec is not None else JsonCodec()
        self._connector = connector if connector is not None else _default_connector
        self._connection = None
        self._writer_queue: Optional[asyncio.Queue] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._listener: Optional[Callable[[Message], None]] = None
        self._connect_failed_listeners: List[Callable[[BaseException], None]] = []
        self._disconnect_listeners: List[Callable[[], None]] = []
        self.closed = False

    # --- events ---

    def on_message(self, listener: Callable[[Message], None]) -> None:
        """Set the single listener receiving raw inbound messages"""
        self._listener = listener

    def on_connect_failed(self, listener: Callable[[BaseException], None]) -> None:
        self._connect_failed_listeners.append(listener)

    def on_disconnect(self, listener: Callable[[], None]) -> None:
        self._disconnect_listeners.append(listener)

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    # --- lifecycle ---

    async def connect(self):
        """Open the connection and start the writer task

        Returns:
            The underlying connection

        Raises:
            SessionClosed: If the session was shut down
            ConnectFailure: If the host could not be reached
        """
        if self.closed:
            raise SessionClosed()
        if self._connection is not None:
            return self._connection

        try:
            connection = await self._connector(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            print(f"[SpotterSession] connectFailed: {e}", file=sys.stderr)
            for listener in self._connect_failed_listeners:
                listener(e)
            raise ConnectFailure(self.url, e) from e

        self._connection = connection
        self._writer_queue = asyncio.Queue()
        self._writer_task = asyncio.create_task(self._writer_loop(connection, self._writer_queue))
        return connection

    async def run(self) -> None:
        """Deliver inbound messages until the connection ends

        Raises:
            SessionClosed: If the session was shut down
        """
        if self.closed:
            raise SessionClosed()
        connection = self._connection
        if connection is None:
            connection = await self.connect()

        try:
            async for message in connection:
                self._deliver(message)
        except (ConnectionClosed, OSError) as e:
            print(f"[SpotterSession] Connection lost: {e}", file=sys.stderr)
        finally:
            self._disconnected(connection)

    def send(self, envelope: Envelope) -> None:
        """Queue an envelope for sending; never raises

        Without a connection the envelope is dropped.
        """
        if self._connection is None or self._writer_queue is None:
            print(f"[SpotterSession] Not connected, dropping {type(envelope).__name__}", file=sys.stderr)
            return

        try:
            data = self.codec.encode(envelope)
        except CodecError as e:
            print(f"[SpotterSession] Encode error: {e}", file=sys.stderr)
            return

        message: Message = data if self.codec.binary else data.decode("utf-8")
        self._writer_queue.put_nowait(WriteMessage(message))

    async def close(self) -> None:
        """Stop the writer and close the connection"""
        self.closed = True
        connection = self._connection
        await self._stop_writer()
        if connection is not None:
            try:
                await connection.close()
            except (OSError, WebSocketException) as e:
                print(f"[SpotterSession] Close error: {e}", file=sys.stderr)
        self._disconnected(connection)

    # --- internal ---

    def _deliver(self, message: Message) -> None:
        if self._listener is None:
            return
        try:
            self._listener(message)
        except Exception:
            print(f"[SpotterSession] Listener error:\n{traceback.format_exc()}", file=sys.stderr)

    def _disconnected(self, connection) -> None:
        if connection is None or self._connection is not connection:
            return
        self._connection = None
        if self._writer_queue is not None:
            self._writer_queue.put_nowait(Shutdown())
        for listener in self._disconnect_listeners:
            listener()

    async def _stop_writer(self) -> None:
        task = self._writer_task
        if task is None:
            return
        if self._writer_queue is not None:
            self._writer_queue.put_nowait(Shutdown())
        await asyncio.gather(task, return_exceptions=True)
        self._writer_task = None

    @staticmethod
    async def _writer_loop(connection, queue: asyncio.Queue):
        """Writer loop - sends messages from the queue in order"""
        while True:
            cmd = await queue.get()
            if isinstance(cmd, Shutdown):
                break
            elif isinstance(cmd, WriteMessage):
                try:
                    await connection.send(cmd.data)
                except (ConnectionClosed, OSError) as e:
                    print(f"[SpotterSession] Writer error: {e}", file=sys.stderr)
                    break
