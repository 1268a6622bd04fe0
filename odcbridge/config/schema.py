"""Marshmallow schema for RuntimeConfig validation."""

from __future__ import annotations

from typing import Any, Dict

from marshmallow import Schema, ValidationError, fields, post_load, pre_load, validate, validates_schema

from ..const import (
    DEFAULT_DEBUG_LOGGING,
    DEFAULT_DEVICE_HOST,
    DEFAULT_DEVICE_ID,
    DEFAULT_ECP_KEY_PRESS_DELAY,
    DEFAULT_ECP_PORT,
    DEFAULT_MQTT_HOST,
    DEFAULT_MQTT_PORT,
    DEFAULT_MQTT_QUEUE_LIMIT,
    DEFAULT_MQTT_TOPIC,
    DEFAULT_OBSERVE_GRACE,
    DEFAULT_OBSERVE_TIMEOUT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
)
from .settings import RuntimeConfig


class RuntimeConfigSchema(Schema):
    """Declarative validation schema for bridge configuration."""

    # Device
    device_host = fields.Str(load_default=DEFAULT_DEVICE_HOST, validate=validate.Length(min=1))
    device_id = fields.Str(load_default=DEFAULT_DEVICE_ID, validate=validate.Length(min=1))
    ecp_port = fields.Int(load_default=DEFAULT_ECP_PORT, validate=validate.Range(min=1, max=65535))
    ecp_key_press_delay = fields.Float(load_default=DEFAULT_ECP_KEY_PRESS_DELAY, validate=validate.Range(min=0.0))
    channel_id = fields.Str(load_default=None, allow_none=True)

    # MQTT
    mqtt_host = fields.Str(load_default=DEFAULT_MQTT_HOST, validate=validate.Length(min=1))
    mqtt_port = fields.Int(load_default=DEFAULT_MQTT_PORT, validate=validate.Range(min=1, max=65535))
    mqtt_user = fields.Str(load_default=None, allow_none=True)
    mqtt_pass = fields.Str(load_default=None, allow_none=True)
    mqtt_tls = fields.Bool(load_default=False)
    mqtt_cafile = fields.Str(load_default=None, allow_none=True)
    mqtt_topic = fields.Str(load_default=DEFAULT_MQTT_TOPIC, validate=validate.Length(min=1))
    mqtt_queue_limit = fields.Int(load_default=DEFAULT_MQTT_QUEUE_LIMIT, validate=validate.Range(min=1))
    reconnect_delay = fields.Int(load_default=DEFAULT_RECONNECT_DELAY, validate=validate.Range(min=1))

    # Requests
    request_timeout = fields.Float(load_default=DEFAULT_REQUEST_TIMEOUT, validate=validate.Range(min=0.01))
    observe_timeout = fields.Float(load_default=DEFAULT_OBSERVE_TIMEOUT, validate=validate.Range(min=0.01))
    observe_grace = fields.Float(load_default=DEFAULT_OBSERVE_GRACE, validate=validate.Range(min=0.0))

    # Logging
    debug_logging = fields.Bool(load_default=DEFAULT_DEBUG_LOGGING)
    log_syslog = fields.Bool(load_default=False)

    @pre_load
    def strip_empty_strings(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        optional = ("channel_id", "mqtt_user", "mqtt_pass", "mqtt_cafile")
        cleaned = dict(data)
        for key in optional:
            value = cleaned.get(key)
            if isinstance(value, str) and not value.strip():
                cleaned[key] = None
        return cleaned

    @pre_load
    def normalize_topic(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        if isinstance(data.get("mqtt_topic"), str):
            segments = [segment for segment in data["mqtt_topic"].split("/") if segment]
            # An empty result must fail Length(min=1) rather than fall back to the default.
            data = {**data, "mqtt_topic": "/".join(segments)}
        return data

    @validates_schema
    def validate_tls(self, data: Dict[str, Any], **kwargs: Any) -> None:
        if data.get("mqtt_cafile") and not data.get("mqtt_tls"):
            raise ValidationError("mqtt_cafile requires mqtt_tls", field_name="mqtt_cafile")

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> RuntimeConfig:
        return RuntimeConfig(**data)
