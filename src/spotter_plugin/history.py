"""Local history collaborators for plugins

- HistoryStore: an append-only JSON document `{"data": [...]}` at a fixed path
- ActiveWindowHistory: the most recent active-window titles, bounded
- CommandWindowObserver: feeds active-window snapshots to subscribers by
  polling a command that prints the focused window title

An active-window observer is anything with `subscribe(listener)` returning a
callable that unsubscribes. Listeners receive `{"title": ...}` snapshots.
"""

import asyncio
import json
import shlex
import sys
import time
import traceback
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Sequence, Union


ACTIVE_WINDOWS_LIMIT = 50

WINDOW_POLL_INTERVAL = 1.0

WindowListener = Callable[[Mapping[str, Any]], None]
Unsubscribe = Callable[[], Any]
WindowSubscribe = Callable[[WindowListener], Unsubscribe]


class HistoryError(Exception):
    """History document could not be read or written"""
    pass


def system_uptime() -> float:
    """Seconds since boot where the platform exposes it, else monotonic time"""
    clock = getattr(time, "CLOCK_BOOTTIME", None)
    if clock is not None:
        return time.clock_gettime(clock)
    return time.monotonic()


@dataclass
class HistoryItem:
    """One recorded action path and the context it happened in"""
    uptime: float
    active_windows_history: List[str]
    action_path: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uptime": self.uptime,
            "activeWindowsHistory": list(self.active_windows_history),
            "actionPath": self.action_path,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryItem":
        return cls(
            uptime=data["uptime"],
            active_windows_history=list(data.get("activeWindowsHistory", [])),
            action_path=data["actionPath"],
        )


class HistoryStore:
    """Append-only JSON history document"""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Dict[str, Any]:
        """Read the document, creating an empty one when missing

        Raises:
            HistoryError: If the file exists but is not a history document
        """
        if not self.path.exists():
            document = {"data": []}
            self._write(document)
            return document

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise HistoryError(f"Failed to read {self.path}: {e}")

        if not isinstance(document, dict) or not isinstance(document.get("data"), list):
            raise HistoryError(f"{self.path} is not a history document")
        return document

    def items(self) -> List[HistoryItem]:
        return [HistoryItem.from_dict(item) for item in self.load()["data"]]

    def append(self, item: HistoryItem) -> None:
        """Append one item and rewrite the document"""
        document = self.load()
        document["data"].append(item.to_dict())
        self._write(document)

    def _write(self, document: Dict[str, Any]) -> None:
        try:
            self.path.write_text(json.dumps(document), encoding="utf-8")
        except OSError as e:
            raise HistoryError(f"Failed to write {self.path}: {e}")


class ActiveWindowHistory:
    """Most recent active-window titles, oldest first"""

    def __init__(self, limit: int = ACTIVE_WINDOWS_LIMIT):
        self._titles: Deque[str] = deque(maxlen=limit)

    def record(self, window: Optional[Mapping[str, Any]]) -> None:
        """Record an active-window snapshot; snapshots without a title are ignored"""
        if not window:
            return
        title = window.get("title")
        if not title:
            return
        self._titles.append(title)

    def titles(self) -> List[str]:
        return list(self._titles)

    def __len__(self) -> int:
        return len(self._titles)


class CommandWindowObserver:
    """Active-window observer backed by a title-printing command

    The command runs every `interval` seconds while subscribed. A snapshot is
    delivered whenever the printed title changes. A failing run (non-zero
    exit, empty output) is skipped; a command that cannot be started stops
    the observer.
    """

    def __init__(self, command: Union[str, Sequence[str]], interval: float = WINDOW_POLL_INTERVAL):
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("window command must not be empty")
        self.interval = interval

    def subscribe(self, listener: WindowListener) -> Unsubscribe:
        """Start polling for `listener`; must be called inside a running loop

        Returns:
            Callable stopping the polling
        """
        task = asyncio.create_task(self._poll(listener))
        return task.cancel

    async def _poll(self, listener: WindowListener) -> None:
        last = None
        while True:
            try:
                title = await self._read_title()
            except OSError as e:
                print(f"[WindowObserver] {self.command[0]}: {e}; active-window tracking stopped", file=sys.stderr)
                return
            if title is not None and title != last:
                last = title
                try:
                    listener({"title": title})
                except Exception:
                    print(f"[WindowObserver] Listener error:\n{traceback.format_exc()}", file=sys.stderr)
            await asyncio.sleep(self.interval)

    async def _read_title(self) -> Optional[str]:
        process = await asyncio.create_subprocess_exec(
            *self.command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
        )
        stdout, _ = await process.communicate()
        if process.returncode != 0:
            return None
        return stdout.decode("utf-8", errors="replace").strip() or None
