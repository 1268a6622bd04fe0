"""Settings loader for the odcbridge client.

Configuration is read from the ``[odcbridge]`` table of a TOML file when a
path is given, with defaults for everything else. Environment variables are
not used as overrides.
"""

from __future__ import annotations

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

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

logger = logging.getLogger(__name__)

CONFIG_SECTION = "odcbridge"


@dataclass(slots=True)
class RuntimeConfig:
    """Strongly typed configuration for the bridge client."""

    device_host: str = DEFAULT_DEVICE_HOST
    device_id: str = DEFAULT_DEVICE_ID
    ecp_port: int = DEFAULT_ECP_PORT
    ecp_key_press_delay: float = DEFAULT_ECP_KEY_PRESS_DELAY
    channel_id: str | None = None
    mqtt_host: str = DEFAULT_MQTT_HOST
    mqtt_port: int = DEFAULT_MQTT_PORT
    mqtt_user: str | None = None
    mqtt_pass: str | None = None
    mqtt_tls: bool = False
    mqtt_cafile: str | None = None
    mqtt_topic: str = DEFAULT_MQTT_TOPIC
    mqtt_queue_limit: int = DEFAULT_MQTT_QUEUE_LIMIT
    reconnect_delay: int = DEFAULT_RECONNECT_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    observe_timeout: float = DEFAULT_OBSERVE_TIMEOUT
    observe_grace: float = DEFAULT_OBSERVE_GRACE
    debug_logging: bool = DEFAULT_DEBUG_LOGGING
    log_syslog: bool = False

    def __post_init__(self) -> None:
        self.mqtt_topic = self._build_topic_prefix(self.mqtt_topic)
        self.device_id = self._require_segment("device_id", self.device_id)
        self.mqtt_queue_limit = self._require_positive("mqtt_queue_limit", int(self.mqtt_queue_limit))
        self.reconnect_delay = self._require_positive("reconnect_delay", int(self.reconnect_delay))
        self.request_timeout = self._require_positive_float("request_timeout", float(self.request_timeout))
        self.observe_timeout = self._require_positive_float("observe_timeout", float(self.observe_timeout))
        self.observe_grace = max(0.0, float(self.observe_grace))
        self.ecp_key_press_delay = max(0.0, float(self.ecp_key_press_delay))
        if not self.mqtt_tls and self.mqtt_user:
            logger.warning(
                "MQTT TLS is disabled; broker credentials will be sent in plaintext."
            )

    @property
    def ecp_base_url(self) -> str:
        return f"http://{self.device_host}:{self.ecp_port}"

    @staticmethod
    def _build_topic_prefix(prefix: str) -> str:
        segments = [segment for segment in prefix.split("/") if segment]
        normalized = "/".join(segments)
        if not normalized:
            raise ValueError("mqtt_topic must contain at least one segment")
        return normalized

    @staticmethod
    def _require_segment(name: str, value: str) -> str:
        candidate = (value or "").strip()
        if not candidate or "/" in candidate or "+" in candidate or "#" in candidate:
            raise ValueError(f"{name} must be a single MQTT topic segment")
        return candidate

    @staticmethod
    def _require_positive(name: str, value: int) -> int:
        if value <= 0:
            raise ValueError(f"{name} must be a positive integer")
        return value

    @staticmethod
    def _require_positive_float(name: str, value: float) -> float:
        if value <= 0.0:
            raise ValueError(f"{name} must be a positive number")
        return value


def _load_raw_config(path: str | Path | None) -> dict[str, Any]:
    if path is None:
        return {}
    config_path = Path(path).expanduser()
    with config_path.open("rb") as handle:
        document = tomllib.load(handle)
    section = document.get(CONFIG_SECTION, {})
    if not isinstance(section, dict):
        raise ValueError(f"[{CONFIG_SECTION}] must be a table in {config_path}")
    return section


def load_runtime_config(path: str | Path | None = None) -> RuntimeConfig:
    """Load configuration from a TOML file (optional) validated by the schema."""
    from .schema import RuntimeConfigSchema

    raw = _load_raw_config(path)
    return RuntimeConfigSchema().load(raw)


__all__ = ["CONFIG_SECTION", "RuntimeConfig", "load_runtime_config"]
