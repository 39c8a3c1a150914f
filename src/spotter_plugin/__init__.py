"""Spotter plugin SDK

Lets an independent process expose query/action options to the Spotter host
over a single websocket connection. Callbacks stay in the plugin process; the
host only ever sees opaque handler ids.
"""

from spotter_plugin.option import Option, MappedOption, Action, OnQuery

from spotter_plugin.envelope import (
    RequestType,
    Request,
    OnQueryRequest,
    OnOptionQueryRequest,
    ExecActionRequest,
    GlobalActionPathRequest,
    OpenSpotterRequest,
    Response,
    Notification,
)

from spotter_plugin.codec import (
    CodecError,
    EncodeError,
    MalformedEnvelope,
    JsonCodec,
    CborCodec,
    codec_for,
)

from spotter_plugin.config import PluginConfig, ConfigError

from spotter_plugin.registry import (
    ROOT,
    HandlerRegistry,
    RegistryError,
    UnknownHandlerId,
)

from spotter_plugin.session import (
    TransportSession,
    SessionError,
    ConnectFailure,
    SessionClosed,
)

from spotter_plugin.dispatcher import Dispatcher, HandlerFailure

from spotter_plugin.plugin import SpotterPlugin

from spotter_plugin.history import (
    HistoryStore,
    HistoryItem,
    ActiveWindowHistory,
    CommandWindowObserver,
    HistoryError,
)

__version__ = "0.1.0"

__all__ = [
    "Option",
    "MappedOption",
    "Action",
    "OnQuery",
    "RequestType",
    "Request",
    "OnQueryRequest",
    "OnOptionQueryRequest",
    "ExecActionRequest",
    "GlobalActionPathRequest",
    "OpenSpotterRequest",
    "Response",
    "Notification",
    "CodecError",
    "EncodeError",
    "MalformedEnvelope",
    "JsonCodec",
    "CborCodec",
    "codec_for",
    "PluginConfig",
    "ConfigError",
    "ROOT",
    "HandlerRegistry",
    "RegistryError",
    "UnknownHandlerId",
    "TransportSession",
    "SessionError",
    "ConnectFailure",
    "SessionClosed",
    "Dispatcher",
    "HandlerFailure",
    "SpotterPlugin",
    "HistoryStore",
    "HistoryItem",
    "ActiveWindowHistory",
    "CommandWindowObserver",
    "HistoryError",
]
