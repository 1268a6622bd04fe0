"""MQTT topic helpers for the device channel.

All topic strings are built here; avoid hardcoding them elsewhere.
"""

from __future__ import annotations

from ..const import MQTT_REQUEST_SEGMENT, MQTT_RESPONSE_SEGMENT


def _split_segments(path: str) -> tuple[str, ...]:
    if not path:
        return ()
    return tuple(segment for segment in path.split("/") if segment)


def topic_path(prefix: str, *segments: str) -> str:
    """Join prefix and sub-segments into a topic path."""
    parts = list(_split_segments(prefix))
    for segment in segments:
        cleaned = segment.strip("/")
        if cleaned:
            parts.append(cleaned)
    if not parts:
        raise ValueError("topic path cannot be empty")
    return "/".join(parts)


def request_topic(prefix: str, device_id: str) -> str:
    """e.g. odc/living-room/request"""
    return topic_path(prefix, device_id, MQTT_REQUEST_SEGMENT)


def response_topic(prefix: str, device_id: str) -> str:
    """e.g. odc/living-room/response"""
    return topic_path(prefix, device_id, MQTT_RESPONSE_SEGMENT)


__all__ = ["request_topic", "response_topic", "topic_path"]
