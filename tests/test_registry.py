"""Tests for the device registry operations."""

from __future__ import annotations

import pytest

from odcbridge.client import OnDeviceComponent
from odcbridge.config.settings import RuntimeConfig
from odcbridge.errors import RegistryError
from odcbridge.services.registry import normalize_filter, validate_values

from .mocks import FakeDevice


@pytest.fixture
def registry_device(device: FakeDevice) -> FakeDevice:
    device.registry.update(
        {
            "auth": {"token": "abc", "user": "tester"},
            "settings": {"captions": "on", "volume": "7"},
            "cache": {"etag": "1"},
        }
    )
    return device


def test_normalize_filter() -> None:
    assert normalize_filter(None) is None
    assert normalize_filter({"auth": "token", "settings": ["a", "b"], "cache": []}) == {
        "auth": ["token"],
        "settings": ["a", "b"],
        "cache": [],
    }
    with pytest.raises(RegistryError):
        normalize_filter({"auth": [1]})
    with pytest.raises(RegistryError):
        normalize_filter(["auth"])  # type: ignore[arg-type]


def test_validate_values() -> None:
    assert validate_values({"auth": {"token": None, "user": "x"}}) == {"auth": {"token": None, "user": "x"}}
    with pytest.raises(RegistryError):
        validate_values({"auth": {"token": 5}})
    with pytest.raises(RegistryError):
        validate_values({"auth": "token"})


@pytest.mark.asyncio
async def test_read_everything(runtime_config: RuntimeConfig, registry_device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=registry_device) as odc:
        result = await odc.read_registry()

    assert result.values == registry_device.registry
    assert "values" not in registry_device.requests[-1].args


@pytest.mark.asyncio
async def test_read_filtered_omits_missing(runtime_config: RuntimeConfig, registry_device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=registry_device) as odc:
        result = await odc.read_registry(
            {"auth": "token", "settings": ["volume", "missing"], "cache": [], "ghost": ["x"]}
        )

    assert result.values == {
        "auth": {"token": "abc"},
        "settings": {"volume": "7"},
        "cache": {"etag": "1"},
    }


@pytest.mark.asyncio
async def test_write_merges_and_null_deletes(runtime_config: RuntimeConfig, registry_device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=registry_device) as odc:
        elapsed = await odc.write_registry({"auth": {"token": None, "expires": "never"}, "new": {"k": "v"}})
        result = await odc.read_registry()

    assert isinstance(elapsed, float)
    assert result.values["auth"] == {"user": "tester", "expires": "never"}
    assert result.values["new"] == {"k": "v"}
    assert result.values["settings"] == {"captions": "on", "volume": "7"}


@pytest.mark.asyncio
async def test_write_rejects_non_string_values(runtime_config: RuntimeConfig, registry_device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=registry_device) as odc:
        with pytest.raises(RegistryError):
            await odc.write_registry({"auth": {"token": 1}})  # type: ignore[dict-item]

    assert registry_device.requests == []


@pytest.mark.asyncio
async def test_delete_sections(runtime_config: RuntimeConfig, registry_device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=registry_device) as odc:
        await odc.delete_registry_sections("auth")
        await odc.delete_registry_sections(["cache", "does-not-exist"])
        result = await odc.read_registry()

    assert result.values == {"settings": {"captions": "on", "volume": "7"}}


@pytest.mark.asyncio
async def test_delete_entire_registry(runtime_config: RuntimeConfig, registry_device: FakeDevice) -> None:
    async with OnDeviceComponent(runtime_config, transport=registry_device) as odc:
        await odc.delete_entire_registry()
        result = await odc.read_registry()

    assert result.values == {}
