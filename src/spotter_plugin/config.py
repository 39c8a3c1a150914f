"""Plugin configuration

Supports configuration via:
1. Builder methods (highest priority)
2. Environment variables (SPOTTER_URL, SPOTTER_WIRE_FORMAT,
   SPOTTER_HANDLER_TIMEOUT, SPOTTER_RETIRED_GENERATIONS, SPOTTER_HISTORY_PATH,
   SPOTTER_WINDOW_COMMAND)
3. Default values
"""

import os
from typing import Optional


DEFAULT_URL = "ws://0.0.0.0:4040"
DEFAULT_WIRE_FORMAT = "json"
DEFAULT_RETIRED_GENERATIONS = 1
DEFAULT_HISTORY_PATH = "db.json"
# Prints the focused window title on X11; empty disables the observer
DEFAULT_WINDOW_COMMAND = "xdotool getactivewindow getwindowname"

WIRE_FORMATS = ("json", "cbor")


class ConfigError(Exception):
    """Invalid configuration value"""
    pass


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return None
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


class PluginConfig:
    """Configuration for a plugin process"""

    def __init__(
        self,
        url: Optional[str] = None,
        wire_format: Optional[str] = None,
        handler_timeout: Optional[float] = None,
        retired_generations: Optional[int] = None,
        history_path: Optional[str] = None,
        window_command: Optional[str] = None,
    ):
        """Create plugin configuration

        Args:
            url: Websocket endpoint of the host
            wire_format: "json" or "cbor"
            handler_timeout: Seconds to wait for a callback before answering
                with an empty complete response; None waits forever
            retired_generations: How many superseded option generations stay
                resolvable
            history_path: Location of the append-only history document
            window_command: Command printing the active window title; an
                empty string disables active-window tracking

        Raises:
            ConfigError: If a value is invalid
        """
        if url is None:
            url = os.getenv("SPOTTER_URL", DEFAULT_URL)
        if wire_format is None:
            wire_format = os.getenv("SPOTTER_WIRE_FORMAT", DEFAULT_WIRE_FORMAT)
        if handler_timeout is None:
            handler_timeout = _env_float("SPOTTER_HANDLER_TIMEOUT")
        if retired_generations is None:
            retired_generations = _env_int("SPOTTER_RETIRED_GENERATIONS", DEFAULT_RETIRED_GENERATIONS)
        if history_path is None:
            history_path = os.getenv("SPOTTER_HISTORY_PATH", DEFAULT_HISTORY_PATH)
        if window_command is None:
            window_command = os.getenv("SPOTTER_WINDOW_COMMAND", DEFAULT_WINDOW_COMMAND)

        self.url = url
        self.wire_format = wire_format
        self.handler_timeout = handler_timeout
        self.retired_generations = retired_generations
        self.history_path = history_path
        self.window_command = window_command
        self.validate()

    def validate(self) -> None:
        """Check all values

        Raises:
            ConfigError: If a value is invalid
        """
        if not self.url.startswith(("ws://", "wss://")):
            raise ConfigError(f"url must be a ws:// or wss:// URL, got {self.url!r}")
        if self.wire_format not in WIRE_FORMATS:
            raise ConfigError(f"wire_format must be one of {WIRE_FORMATS}, got {self.wire_format!r}")
        if self.handler_timeout is not None and self.handler_timeout <= 0:
            raise ConfigError("handler_timeout must be positive")
        if self.retired_generations < 0:
            raise ConfigError("retired_generations must not be negative")

    def with_url(self, url: str) -> "PluginConfig":
        """Set the host endpoint"""
        self.url = url
        self.validate()
        return self

    def with_wire_format(self, wire_format: str) -> "PluginConfig":
        """Set the wire format"""
        self.wire_format = wire_format
        self.validate()
        return self

    def with_handler_timeout(self, seconds: Optional[float]) -> "PluginConfig":
        """Bound callback execution time; None disables the bound"""
        self.handler_timeout = seconds
        self.validate()
        return self

    def with_retired_generations(self, count: int) -> "PluginConfig":
        """Set how many superseded generations remain resolvable"""
        self.retired_generations = count
        self.validate()
        return self

    def with_history_path(self, path: str) -> "PluginConfig":
        """Set the history document location"""
        self.history_path = path
        return self

    def with_window_command(self, command: str) -> "PluginConfig":
        """Set the active-window title command; empty disables tracking"""
        self.window_command = command
        return self
