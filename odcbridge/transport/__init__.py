"""Device transports for the bridge client."""

from .base import DeviceTransport, EnvelopeReceiver, LinkLostCallback
from .mqtt import MqttDeviceTransport

__all__ = ["DeviceTransport", "EnvelopeReceiver", "LinkLostCallback", "MqttDeviceTransport"]
