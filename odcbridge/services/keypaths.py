"""Reading and writing values addressed by key paths."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import msgspec

from ..errors import KeyPathNotFound
from ..keypath import is_valid_key_path, parse_key_path
from ..protocol.envelopes import RequestKind
from ..protocol.values import Base, Node, encode_value
from .base import ServiceComponent, target_args

logger = logging.getLogger("odcbridge.keypaths")


class KeyPathRequest(msgspec.Struct, frozen=True):
    key_path: str
    base: Base = Base.GLOBAL


class ValueResult(msgspec.Struct, frozen=True):
    found: bool
    value: Any = None
    time_taken: float = 0.0


class ValuesResult(msgspec.Struct, frozen=True):
    """Values keyed by the caller's request names; missing paths map to ``None``."""

    results: dict[str, Any]
    found: dict[str, bool]
    time_taken: float = 0.0


def _as_request(item: KeyPathRequest | Mapping[str, Any] | str) -> KeyPathRequest:
    if isinstance(item, KeyPathRequest):
        return item
    if isinstance(item, str):
        return KeyPathRequest(key_path=item)
    key_path = item.get("keyPath", item.get("key_path", ""))
    return KeyPathRequest(key_path=str(key_path), base=Base.coerce(item.get("base")))


class KeyPathComponent(ServiceComponent):
    """get/set operations and focus queries."""

    async def get_value(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> ValueResult:
        args = target_args(base, key_path)
        if not is_valid_key_path(key_path):
            logger.debug("Malformed key path '%s' resolved locally as not found", key_path)
            return ValueResult(found=False)
        try:
            reply = await self.ctx.send(RequestKind.GET_VALUE_AT_KEY_PATH, args, timeout=timeout)
        except KeyPathNotFound:
            return ValueResult(found=False)
        result = reply.result or {}
        found = bool(result.get("found"))
        return ValueResult(
            found=found,
            value=result.get("value") if found else None,
            time_taken=reply.time_taken,
        )

    async def get_values(
        self,
        requests: Mapping[str, KeyPathRequest | Mapping[str, Any] | str],
        *,
        timeout: float | None = None,
    ) -> ValuesResult:
        normalized = {name: _as_request(item) for name, item in requests.items()}
        wire: dict[str, Any] = {}
        found: dict[str, bool] = {}
        for name, request in normalized.items():
            if is_valid_key_path(request.key_path):
                wire[name] = target_args(request.base, request.key_path)
            else:
                found[name] = False
        results: dict[str, Any] = {name: None for name in normalized}
        if not wire:
            return ValuesResult(results=results, found=found)

        reply = await self.ctx.send(
            RequestKind.GET_VALUES_AT_KEY_PATHS,
            {"requests": wire},
            timeout=timeout,
        )
        payload = (reply.result or {}).get("results") or {}
        for name in wire:
            entry = payload.get(name) or {}
            found[name] = bool(entry.get("found"))
            if found[name]:
                results[name] = entry.get("value")
        return ValuesResult(results=results, found=found, time_taken=reply.time_taken)

    async def set_value(
        self,
        key_path: str,
        value: Any,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> float:
        """Assign *value*; a ``{subtype, children?}`` mapping creates a node."""
        args = target_args(base, key_path)
        if not parse_key_path(key_path):
            raise KeyPathNotFound("Cannot assign to the base root")
        args["value"] = encode_value(value)
        reply = await self.ctx.send(RequestKind.SET_VALUE_AT_KEY_PATH, args, timeout=timeout)
        return reply.time_taken

    async def get_focused_node(self, *, timeout: float | None = None) -> Node | None:
        reply = await self.ctx.send(RequestKind.GET_FOCUSED_NODE, {}, timeout=timeout)
        node = (reply.result or {}).get("node")
        return node if isinstance(node, Node) else None

    async def has_focus(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> bool:
        args = target_args(base, key_path)
        parse_key_path(key_path)
        reply = await self.ctx.send(RequestKind.HAS_FOCUS, args, timeout=timeout)
        return bool((reply.result or {}).get("hasFocus"))

    async def is_in_focus_chain(
        self,
        key_path: str,
        *,
        base: Base | str | None = None,
        timeout: float | None = None,
    ) -> bool:
        args = target_args(base, key_path)
        parse_key_path(key_path)
        reply = await self.ctx.send(RequestKind.IS_IN_FOCUS_CHAIN, args, timeout=timeout)
        return bool((reply.result or {}).get("isInFocusChain"))


__all__ = ["KeyPathComponent", "KeyPathRequest", "ValueResult", "ValuesResult"]
