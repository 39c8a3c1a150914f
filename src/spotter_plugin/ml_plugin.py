"""ML data collection plugin

Records every action path the host pushes together with the recent
active-window titles, and offers a `-ml` query that exports the collected
history.

History file I/O runs in a worker thread so long histories do not stall
request dispatch.
"""

import asyncio
import json
import sys
from typing import Any, Callable, List, Mapping, Optional

from spotter_plugin.config import PluginConfig
from spotter_plugin.history import (
    ActiveWindowHistory,
    HistoryItem,
    HistoryStore,
    Unsubscribe,
    WindowSubscribe,
    system_uptime,
)
from spotter_plugin.option import Option
from spotter_plugin.plugin import SpotterPlugin
from spotter_plugin.session import TransportSession


EXPORT_QUERY = "-ml"


def _print_export(text: str) -> None:
    print(text)


class MLPlugin(SpotterPlugin):
    """Collects action paths for later training"""

    def __init__(
        self,
        config: Optional[PluginConfig] = None,
        session: Optional[TransportSession] = None,
        exporter: Optional[Callable[[str], Any]] = None,
        window_subscribe: Optional[WindowSubscribe] = None,
    ):
        """Create the plugin

        Args:
            config: Plugin configuration; history_path selects the store
            session: Pre-built session, mainly for tests
            exporter: Receives the exported history JSON (defaults to stdout)
            window_subscribe: Active-window observer `subscribe`, attached on
                start; without one the recorded window history stays empty
        """
        super().__init__(config, session)
        self.store = HistoryStore(self.config.history_path)
        self.windows = ActiveWindowHistory()
        self.exporter = exporter if exporter is not None else _print_export
        self.window_subscribe = window_subscribe
        self._unsubscribe: Optional[Unsubscribe] = None
        self._store_lock: Optional[asyncio.Lock] = None

    def record_active_window(self, window: Optional[Mapping[str, Any]]) -> None:
        """Feed an active-window snapshot ({title, application, ...})"""
        self.windows.record(window)

    async def start(self) -> None:
        await super().start()
        if self.window_subscribe is not None and self._unsubscribe is None:
            self._unsubscribe = self.window_subscribe(self.record_active_window)

    async def shutdown(self, grace: float = 5.0) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await super().shutdown(grace)

    def on_open_spotter(self) -> None:
        print("[MLPlugin] open spotter", file=sys.stderr)

    async def on_query(self, query: str) -> List[Option]:
        if query != EXPORT_QUERY:
            return []

        async with self._lock():
            data = await asyncio.to_thread(self.store.load)

        async def export():
            self.exporter(json.dumps(data))
            return True

        return [Option(name=EXPORT_QUERY, action=export)]

    async def on_global_action_path(self, action_path: str) -> None:
        item = HistoryItem(
            uptime=system_uptime(),
            active_windows_history=self.windows.titles(),
            action_path=action_path,
        )
        async with self._lock():
            await asyncio.to_thread(self.store.append, item)

    def _lock(self) -> asyncio.Lock:
        # Created on first use so it belongs to the running loop
        if self._store_lock is None:
            self._store_lock = asyncio.Lock()
        return self._store_lock
