"""Wire Codec - encoding and decoding envelopes

Two encodings of the same envelope maps are provided:

- JsonCodec (default): one JSON document per websocket text message. This is
  what the host speaks.
- CborCodec: the same maps encoded with CBOR, carried in binary messages.

Decoding never returns a partially valid request: anything that is not a map
with a known `type` and correctly typed fields raises MalformedEnvelope.
"""

import json
from typing import Any, Dict, Union

import cbor2

from spotter_plugin.envelope import (
    Envelope,
    ExecActionRequest,
    GlobalActionPathRequest,
    Notification,
    OnOptionQueryRequest,
    OnQueryRequest,
    OpenSpotterRequest,
    Request,
    RequestType,
    Response,
)


class CodecError(Exception):
    """Base codec error"""
    pass


class EncodeError(CodecError):
    """Envelope could not be encoded"""
    pass


class MalformedEnvelope(CodecError):
    """Inbound message is not a well-formed request envelope"""
    pass


_STRING_FIELDS = ("id", "query", "actionId", "onQueryId", "mlGlobalActionPath")


def envelope_to_dict(envelope: Envelope) -> Dict[str, Any]:
    """Convert an outbound envelope to its wire map

    Raises:
        EncodeError: If the object is not a Response or Notification
    """
    if isinstance(envelope, (Response, Notification)):
        return envelope.to_dict()
    raise EncodeError(f"cannot encode {type(envelope).__name__}")


def request_from_dict(data: Any) -> Request:
    """Build a typed request from a decoded wire map

    Raises:
        MalformedEnvelope: If the map is not a valid request
    """
    if not isinstance(data, dict):
        raise MalformedEnvelope(f"expected map, got {type(data).__name__}")

    for key in _STRING_FIELDS:
        value = data.get(key)
        if value is not None and not isinstance(value, str):
            raise MalformedEnvelope(f"field {key!r} must be a string")

    request_type = RequestType.from_str(data.get("type"))
    if request_type is None:
        raise MalformedEnvelope(f"unknown request type: {data.get('type')!r}")

    request_id = data.get("id") or ""
    query = data.get("query") or ""

    if request_type is RequestType.ON_QUERY:
        return OnQueryRequest(id=request_id, query=query)

    # A missing handler id never resolves, so the request is still answered
    if request_type is RequestType.ON_OPTION_QUERY:
        return OnOptionQueryRequest(id=request_id, on_query_id=data.get("onQueryId") or "", query=query)

    if request_type is RequestType.EXEC_ACTION:
        return ExecActionRequest(id=request_id, action_id=data.get("actionId") or "")

    if request_type is RequestType.ML_ON_GLOBAL_ACTION_PATH:
        return GlobalActionPathRequest(id=request_id, ml_global_action_path=data.get("mlGlobalActionPath"))

    if request_type is RequestType.ON_OPEN_SPOTTER:
        return OpenSpotterRequest(id=request_id)

    raise MalformedEnvelope(f"unhandled request type: {request_type}")


class JsonCodec:
    """JSON text codec"""

    name = "json"
    binary = False

    def encode(self, envelope: Envelope) -> bytes:
        """Encode an outbound envelope to UTF-8 JSON bytes

        Raises:
            EncodeError: If encoding fails
        """
        data = envelope_to_dict(envelope)
        try:
            return json.dumps(data, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodeError(f"JSON encoding failed: {e}")

    def decode(self, data: Union[bytes, str]) -> Request:
        """Decode one inbound message

        Raises:
            MalformedEnvelope: If the message is not a valid request
        """
        if isinstance(data, (bytes, bytearray)):
            try:
                data = bytes(data).decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedEnvelope(f"invalid UTF-8: {e}")
        try:
            parsed = json.loads(data)
        except ValueError as e:
            raise MalformedEnvelope(f"JSON decoding failed: {e}")
        return request_from_dict(parsed)


class CborCodec:
    """CBOR binary codec"""

    name = "cbor"
    binary = True

    def encode(self, envelope: Envelope) -> bytes:
        """Encode an outbound envelope to CBOR bytes

        Raises:
            EncodeError: If encoding fails
        """
        data = envelope_to_dict(envelope)
        try:
            return cbor2.dumps(data)
        except Exception as e:
            raise EncodeError(f"CBOR encoding failed: {e}")

    def decode(self, data: Union[bytes, str]) -> Request:
        """Decode one inbound message

        Raises:
            MalformedEnvelope: If the message is not a valid request
        """
        if isinstance(data, str):
            raise MalformedEnvelope("expected binary message for CBOR codec")
        try:
            parsed = cbor2.loads(data)
        except Exception as e:
            raise MalformedEnvelope(f"CBOR decoding failed: {e}")
        return request_from_dict(parsed)


Codec = Union[JsonCodec, CborCodec]


def codec_for(wire_format: str) -> Codec:
    """Return the codec for a configured wire format name

    Raises:
        ValueError: If the format is unknown
    """
    if wire_format == JsonCodec.name:
        return JsonCodec()
    if wire_format == CborCodec.name:
        return CborCodec()
    raise ValueError(f"unknown wire format: {wire_format!r}")
