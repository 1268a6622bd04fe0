"""Request/response envelopes exchanged with the on-device component."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

import msgspec


class RequestKind(StrEnum):
    GET_VALUE_AT_KEY_PATH = "getValueAtKeyPath"
    GET_VALUES_AT_KEY_PATHS = "getValuesAtKeyPaths"
    SET_VALUE_AT_KEY_PATH = "setValueAtKeyPath"
    GET_FOCUSED_NODE = "getFocusedNode"
    HAS_FOCUS = "hasFocus"
    IS_IN_FOCUS_CHAIN = "isInFocusChain"
    OBSERVE_FIELD = "observeField"
    UNOBSERVE_FIELD = "unobserveField"
    CALL_FUNC = "callFunc"
    READ_REGISTRY = "readRegistry"
    WRITE_REGISTRY = "writeRegistry"
    DELETE_REGISTRY_SECTIONS = "deleteRegistrySections"
    DELETE_ENTIRE_REGISTRY = "deleteEntireRegistry"


class EventKind(StrEnum):
    FIELD_CHANGED = "fieldChanged"


def _args_factory() -> dict[str, Any]:
    return {}


class ErrorInfo(msgspec.Struct, omit_defaults=True):
    kind: str
    message: str = ""


class RequestEnvelope(msgspec.Struct, omit_defaults=True):
    """Outbound request ``{id, kind, args}``."""

    id: int
    kind: str
    args: dict[str, Any] = msgspec.field(default_factory=_args_factory)


class InboundEnvelope(msgspec.Struct, omit_defaults=True, rename="camel"):
    """Response or event from the device.

    A response completes the request carrying the same ``id``; an envelope
    with ``event`` set is a notification for a watch registration and leaves
    the request pending.
    """

    id: int
    success: bool = True
    result: Any = None
    error: ErrorInfo | None = None
    time_taken: float | None = None
    event: str | None = None

    @property
    def is_event(self) -> bool:
        return self.event is not None


_request_encoder = msgspec.json.Encoder()
_inbound_decoder = msgspec.json.Decoder(InboundEnvelope)
_inbound_encoder = msgspec.json.Encoder()
_request_decoder = msgspec.json.Decoder(RequestEnvelope)


def encode_request(envelope: RequestEnvelope) -> bytes:
    return _request_encoder.encode(envelope)


def decode_request(payload: bytes | str) -> RequestEnvelope:
    return _request_decoder.decode(payload)


def encode_inbound(envelope: InboundEnvelope) -> bytes:
    return _inbound_encoder.encode(envelope)


def decode_inbound(payload: bytes | str) -> InboundEnvelope:
    """Decode a device envelope, raising ``msgspec.DecodeError`` on bad input."""
    return _inbound_decoder.decode(payload)


__all__ = [
    "ErrorInfo",
    "EventKind",
    "InboundEnvelope",
    "RequestEnvelope",
    "RequestKind",
    "decode_inbound",
    "decode_request",
    "encode_inbound",
    "encode_request",
]
