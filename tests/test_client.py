"""Tests for the client lifecycle."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from odcbridge.client import OnDeviceComponent
from odcbridge.config.settings import RuntimeConfig
from odcbridge.errors import TransportError
from odcbridge.transport.mqtt import MqttDeviceTransport

from .mocks import FakeDevice


@pytest.mark.asyncio
async def test_operations_require_start(runtime_config: RuntimeConfig, device: FakeDevice) -> None:
    odc = OnDeviceComponent(runtime_config, transport=device)
    with pytest.raises(RuntimeError):
        await odc.get_value_at_key_path("counter")
    with pytest.raises(RuntimeError):
        _ = odc.dispatcher

    async with odc:
        assert (await odc.get_value_at_key_path("counter")).value == 0

    with pytest.raises(RuntimeError):
        await odc.read_registry()
    assert device.requests[0].id == 1


@pytest.mark.asyncio
async def test_owned_transport_must_become_ready(runtime_config: RuntimeConfig) -> None:
    with patch.object(MqttDeviceTransport, "run", AsyncMock(side_effect=OSError("connection refused"))):
        odc = OnDeviceComponent(runtime_config)
        with pytest.raises(TransportError, match="connection refused"):
            await odc.start()

    with pytest.raises(RuntimeError):
        _ = odc.dispatcher


@pytest.mark.asyncio
async def test_owned_transport_is_stopped_on_exit(runtime_config: RuntimeConfig) -> None:
    stopped = asyncio.Event()

    async def fake_run(self: MqttDeviceTransport) -> None:
        self.trigger("connect")
        self.trigger("connected")
        self.trigger("subscribed")
        try:
            await asyncio.Event().wait()
        finally:
            self.trigger("disconnect")
            stopped.set()

    with patch.object(MqttDeviceTransport, "run", fake_run):
        async with OnDeviceComponent(runtime_config) as odc:
            transport = odc._transport
            assert isinstance(transport, MqttDeviceTransport)
            assert transport.is_ready

    assert stopped.is_set()
    assert not transport.is_ready
