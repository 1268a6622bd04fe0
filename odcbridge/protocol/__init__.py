"""Wire protocol for the on-device component bridge."""

from .envelopes import (
    ErrorInfo,
    EventKind,
    InboundEnvelope,
    RequestEnvelope,
    RequestKind,
    decode_inbound,
    encode_request,
)
from .topics import request_topic, response_topic, topic_path
from .values import Base, Node, Value, decode_value, describe_node, encode_value

__all__ = [
    "Base",
    "ErrorInfo",
    "EventKind",
    "InboundEnvelope",
    "Node",
    "RequestEnvelope",
    "RequestKind",
    "Value",
    "decode_inbound",
    "decode_value",
    "describe_node",
    "encode_request",
    "encode_value",
    "request_topic",
    "response_topic",
    "topic_path",
]
