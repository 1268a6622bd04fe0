"""Constants shared across odcbridge modules."""

from __future__ import annotations

from typing import Final

DEFAULT_DEVICE_HOST: Final[str] = "192.168.1.2"
DEFAULT_DEVICE_ID: Final[str] = "device"
DEFAULT_ECP_PORT: Final[int] = 8060
DEFAULT_ECP_KEY_PRESS_DELAY: Final[float] = 0.0
DEFAULT_ECP_TIMEOUT: Final[float] = 5.0

DEFAULT_MQTT_HOST: Final[str] = "localhost"
DEFAULT_MQTT_PORT: Final[int] = 1883
DEFAULT_MQTT_TOPIC: Final[str] = "odc"
DEFAULT_MQTT_QUEUE_LIMIT: Final[int] = 256
DEFAULT_RECONNECT_DELAY: Final[int] = 2

DEFAULT_REQUEST_TIMEOUT: Final[float] = 10.0
DEFAULT_OBSERVE_TIMEOUT: Final[float] = 60.0
# Extra time the device keeps a watch alive after the client stops waiting.
DEFAULT_OBSERVE_GRACE: Final[float] = 5.0
DEFAULT_DEBUG_LOGGING: Final[bool] = False

MQTT_REQUEST_SEGMENT: Final[str] = "request"
MQTT_RESPONSE_SEGMENT: Final[str] = "response"
MQTT_CONTENT_TYPE: Final[str] = "application/json"

NODE_WIRE_KEY: Final[str] = "$node"

SUPERVISOR_MAX_BACKOFF: Final[float] = 60.0
