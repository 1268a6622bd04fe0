"""Pytest configuration for odcbridge tests."""

from __future__ import annotations

import logging

import pytest

from odcbridge.config.settings import RuntimeConfig

from .mocks import FakeDevice


@pytest.fixture
def runtime_config() -> RuntimeConfig:
    return RuntimeConfig(
        device_host="127.0.0.1",
        device_id="tv",
        mqtt_topic="odc/test",
        request_timeout=1.0,
        observe_timeout=2.0,
        observe_grace=0.5,
    )


@pytest.fixture
def device() -> FakeDevice:
    return FakeDevice(global_fields={"launchComplete": False, "counter": 0, "config": {"theme": "dark"}})


@pytest.fixture(autouse=True)
def reset_logging_handlers():
    """Close and remove all logging handlers after each test to prevent ResourceWarnings."""
    yield
    root = logging.getLogger()
    for handler in root.handlers[:]:
        try:
            handler.close()
        except (OSError, RuntimeError):
            pass
        root.removeHandler(handler)
