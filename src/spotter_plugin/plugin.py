"""Plugin Surface - the base class plugin implementations extend

```python
from spotter_plugin import Option, SpotterPlugin

class Hello(SpotterPlugin):
    def on_query(self, query):
        return [Option(name="hello", action=lambda: True)]

Hello().run()
```

One instance owns one TransportSession, one HandlerRegistry and one
Dispatcher. The process entry point constructs it, `run()` drives it until
the connection ends, and `shutdown()` releases everything explicitly.
"""

import asyncio
import sys
from typing import Awaitable, List, Optional, Union

from spotter_plugin.codec import codec_for
from spotter_plugin.config import PluginConfig
from spotter_plugin.dispatcher import Dispatcher
from spotter_plugin.envelope import Notification
from spotter_plugin.option import Option
from spotter_plugin.registry import HandlerRegistry
from spotter_plugin.session import ConnectFailure, TransportSession


class SpotterPlugin:
    """Base plugin; override the hooks you need"""

    def __init__(
        self,
        config: Optional[PluginConfig] = None,
        session: Optional[TransportSession] = None,
    ):
        """Create a plugin

        Args:
            config: Plugin configuration (defaults from environment)
            session: Pre-built session, mainly for tests
        """
        self.config = config if config is not None else PluginConfig()
        codec = codec_for(self.config.wire_format)
        self.session = session if session is not None else TransportSession(self.config.url, codec)
        self.registry = HandlerRegistry(retired_limit=self.config.retired_generations)
        self.dispatcher = Dispatcher(
            self,
            self.registry,
            self.session.send,
            codec=self.session.codec,
            handler_timeout=self.config.handler_timeout,
        )
        self.session.on_message(self.dispatcher.feed)
        self._run_task: Optional[asyncio.Task] = None

    # --- hooks ---

    def on_open_spotter(self) -> None:
        """Called when the host UI opens"""

    def on_global_action_path(self, action_path: str) -> None:
        """Called with the action path the host pushes"""

    def on_query(self, query: str) -> Union[List[Option], Awaitable[List[Option]]]:
        """Return options for a top-level query"""
        return []

    # --- push ---

    def suggest(self, action_path: str) -> None:
        """Push an action path suggestion to the host

        Dropped silently when not connected; no response is awaited.
        """
        if not self.session.is_connected:
            return
        self.session.send(Notification(ml_global_action_path=action_path))

    # --- lifecycle ---

    async def start(self) -> None:
        """Connect and start reading

        Raises:
            ConnectFailure: If the host could not be reached
        """
        await self.session.connect()
        self._run_task = asyncio.create_task(self.session.run())

    async def wait_closed(self) -> None:
        """Wait until the connection ends"""
        if self._run_task is not None:
            await self._run_task

    async def shutdown(self, grace: float = 5.0) -> None:
        """Drain in-flight requests, flush the registry and close the transport

        Args:
            grace: Seconds to wait for in-flight requests before cancelling them
        """
        try:
            await asyncio.wait_for(self.dispatcher.drain(), timeout=grace)
        except asyncio.TimeoutError:
            print(f"[SpotterPlugin] Cancelling {self.dispatcher.pending} pending request(s)", file=sys.stderr)
            await self.dispatcher.cancel()
        await self.session.close()
        if self._run_task is not None:
            await asyncio.gather(self._run_task, return_exceptions=True)
        self.registry.clear()

    async def serve(self) -> None:
        """Start, wait for the connection to end, then shut down"""
        await self.start()
        try:
            await self.wait_closed()
        finally:
            await self.shutdown()

    def run(self) -> int:
        """Synchronous entry point

        Returns:
            Process exit code
        """
        try:
            asyncio.run(self.serve())
        except ConnectFailure as e:
            print(f"[SpotterPlugin] {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            return 130
        return 0
