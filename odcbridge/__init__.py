"""Test automation client for applications running an on-device component."""

__version__ = "1.0.0"

import paho.mqtt.client as _paho


def _check_dependencies() -> None:
    # aiomqtt drives paho-mqtt through CallbackAPIVersion.VERSION2 (paho 2.x).
    if not hasattr(_paho, "CallbackAPIVersion"):
        raise ImportError("odcbridge requires paho-mqtt 2.x with CallbackAPIVersion support")


_check_dependencies()
