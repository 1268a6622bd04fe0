"""Tests for the Prometheus exposition of dispatcher counters."""

from __future__ import annotations

import pytest

from odcbridge import __version__
from odcbridge.client import OnDeviceComponent
from odcbridge.config.settings import RuntimeConfig
from odcbridge.errors import RequestTimeout
from odcbridge.metrics import build_registry, render_metrics
from odcbridge.protocol.envelopes import RequestKind

from .mocks import FakeDevice


@pytest.mark.asyncio
async def test_render_metrics_reports_counters(runtime_config: RuntimeConfig, device: FakeDevice) -> None:
    runtime_config.request_timeout = 0.02
    device.silent_kinds.add(RequestKind.HAS_FOCUS)

    async with OnDeviceComponent(runtime_config, transport=device) as odc:
        await odc.get_value_at_key_path("counter")
        await odc.get_value_at_key_path("missing")
        with pytest.raises(RequestTimeout):
            await odc.has_focus("grid", base="scene")
        text = render_metrics(odc.dispatcher).decode("utf-8")

    assert "odcbridge_requests_sent 3.0" in text
    assert "odcbridge_requests_timed_out 1.0" in text
    assert "odcbridge_requests_pending 0.0" in text
    assert f'odcbridge_info{{version="{__version__}"}} 1.0' in text


@pytest.mark.asyncio
async def test_registry_is_isolated(runtime_config: RuntimeConfig, device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=device) as odc:
        registry = build_registry(odc.dispatcher)
        assert registry.get_sample_value("odcbridge_requests_sent") == 0.0
        await odc.get_value_at_key_path("counter")
        assert registry.get_sample_value("odcbridge_requests_sent") == 1.0
        assert registry.get_sample_value("odcbridge_requests_completed") == 1.0
