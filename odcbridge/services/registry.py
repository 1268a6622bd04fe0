"""Persistent key/value registry held by the device."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence

import msgspec

from ..errors import RegistryError
from ..protocol.envelopes import RequestKind
from .base import ServiceComponent

logger = logging.getLogger("odcbridge.registry")

RegistryFilter = Mapping[str, str | Sequence[str]]
RegistryValues = dict[str, dict[str, str]]


class RegistryResult(msgspec.Struct, frozen=True):
    values: RegistryValues
    time_taken: float


def normalize_filter(filters: RegistryFilter | None) -> dict[str, list[str]] | None:
    """Return ``section -> [keys]``; a single key string becomes a one-item list."""
    if filters is None:
        return None
    if not isinstance(filters, Mapping):
        raise RegistryError("Registry filter must map sections to keys")

    normalized: dict[str, list[str]] = {}
    for section, keys in filters.items():
        if not isinstance(section, str):
            raise RegistryError(f"Registry section must be a string, got {type(section).__name__}")
        if isinstance(keys, str):
            normalized[section] = [keys]
            continue
        if not isinstance(keys, Sequence) or not all(isinstance(key, str) for key in keys):
            raise RegistryError(f"Keys for section '{section}' must be strings")
        normalized[section] = list(keys)
    return normalized


def validate_values(values: Mapping[str, Mapping[str, str | None]]) -> dict[str, dict[str, str | None]]:
    if not isinstance(values, Mapping):
        raise RegistryError("Registry values must map sections to key/value pairs")

    checked: dict[str, dict[str, str | None]] = {}
    for section, entries in values.items():
        if not isinstance(section, str) or not isinstance(entries, Mapping):
            raise RegistryError(f"Section '{section}' must map string keys to values")
        checked[section] = {}
        for key, value in entries.items():
            if not isinstance(key, str):
                raise RegistryError(f"Registry key in '{section}' must be a string")
            if value is not None and not isinstance(value, str):
                raise RegistryError(f"Registry value for '{section}.{key}' must be a string or None")
            checked[section][key] = value
    return checked


class RegistryComponent(ServiceComponent):
    async def read(
        self,
        filters: RegistryFilter | None = None,
        *,
        timeout: float | None = None,
    ) -> RegistryResult:
        normalized = normalize_filter(filters)
        args = {} if normalized is None else {"values": normalized}
        reply = await self.ctx.send(RequestKind.READ_REGISTRY, args, timeout=timeout)
        raw = (reply.result or {}).get("values") or {}
        values: RegistryValues = {section: dict(entries) for section, entries in raw.items()}
        return RegistryResult(values=values, time_taken=reply.time_taken)

    async def write(
        self,
        values: Mapping[str, Mapping[str, str | None]],
        *,
        timeout: float | None = None,
    ) -> float:
        checked = validate_values(values)
        if not checked:
            return 0.0
        reply = await self.ctx.send(RequestKind.WRITE_REGISTRY, {"values": checked}, timeout=timeout)
        return reply.time_taken

    async def delete_sections(
        self,
        sections: str | Sequence[str],
        *,
        timeout: float | None = None,
    ) -> float:
        names = [sections] if isinstance(sections, str) else list(sections)
        if not all(isinstance(name, str) for name in names):
            raise RegistryError("Section names must be strings")
        reply = await self.ctx.send(
            RequestKind.DELETE_REGISTRY_SECTIONS,
            {"sections": names},
            timeout=timeout,
        )
        logger.debug("Deleted registry sections %s", names)
        return reply.time_taken

    async def delete_entire(self, *, timeout: float | None = None) -> float:
        reply = await self.ctx.send(RequestKind.DELETE_ENTIRE_REGISTRY, {}, timeout=timeout)
        logger.info("Cleared the device registry")
        return reply.time_taken


__all__ = [
    "RegistryComponent",
    "RegistryResult",
    "normalize_filter",
    "validate_values",
]
