"""Run the ML plugin against a local host

    spotter-plugin [--url ws://0.0.0.0:4040] [--wire-format json|cbor] [--history db.json]
                   [--window-command "xdotool getactivewindow getwindowname"]

An empty --window-command disables active-window tracking.
"""

import sys
from typing import List, Optional

from spotter_plugin.config import ConfigError, PluginConfig
from spotter_plugin.history import CommandWindowObserver, WindowSubscribe
from spotter_plugin.ml_plugin import MLPlugin


FLAGS = ("--url", "--wire-format", "--history", "--window-command")


def _get_cli_flag_value(args: List[str], flag: str) -> Optional[str]:
    """Value of `--flag value` or `--flag=value`, if present"""
    for i, arg in enumerate(args):
        if arg == flag:
            if i + 1 < len(args):
                return args[i + 1]
            return None
        if arg.startswith(flag + "="):
            return arg[len(flag) + 1:]
    return None


def build_config(args: List[str]) -> PluginConfig:
    """Build configuration from command line arguments

    Raises:
        ConfigError: On unknown flags or invalid values
    """
    for arg in args:
        if arg.startswith("--") and arg.split("=", 1)[0] not in FLAGS:
            raise ConfigError(f"unknown flag: {arg}")

    config = PluginConfig()
    url = _get_cli_flag_value(args, "--url")
    if url is not None:
        config.with_url(url)
    wire_format = _get_cli_flag_value(args, "--wire-format")
    if wire_format is not None:
        config.with_wire_format(wire_format)
    history = _get_cli_flag_value(args, "--history")
    if history is not None:
        config.with_history_path(history)
    window_command = _get_cli_flag_value(args, "--window-command")
    if window_command is not None:
        config.with_window_command(window_command)
    return config


def window_subscribe_for(config: PluginConfig) -> Optional[WindowSubscribe]:
    """Active-window observer for the configured command, if any"""
    if not config.window_command:
        return None
    return CommandWindowObserver(config.window_command).subscribe


def main(argv: Optional[List[str]] = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    return MLPlugin(config, window_subscribe=window_subscribe_for(config)).run()


if __name__ == "__main__":
    sys.exit(main())
