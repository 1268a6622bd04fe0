"""Shared mocks for odcbridge tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from odcbridge.errors import BridgeError, FuncNotFound, KeyPathNotFound, TransportError
from odcbridge.keypath import ancestors_of, assign, resolve, resolve_parent
from odcbridge.protocol.envelopes import (
    ErrorInfo,
    EventKind,
    InboundEnvelope,
    RequestEnvelope,
    encode_inbound,
)
from odcbridge.protocol.values import Base, Node, decode_value, encode_value
from odcbridge.transport.base import EnvelopeReceiver, LinkLostCallback

SUBTYPE_DEFAULTS: dict[str, dict[str, Any]] = {
    "Group": {"opacity": 1, "visible": True},
    "Rectangle": {"opacity": 1, "visible": True, "color": "0xFFFFFFFF", "width": 0, "height": 0},
    "Label": {"opacity": 1, "visible": True, "text": ""},
}

DeviceFunction = Callable[..., Any]


def subtype_defaults(subtype: str) -> dict[str, Any]:
    return dict(SUBTYPE_DEFAULTS.get(subtype, {"opacity": 1}))


def build_scene() -> Node:
    """Small scene: a root group with a poster grid and a details pane."""
    posters = [
        Node(subtype="Rectangle", id=f"poster{i}", fields={"opacity": 1, "title": f"Poster {i}"})
        for i in range(3)
    ]
    grid = Node(subtype="Group", id="grid", fields={"opacity": 1}, children=posters)
    title = Node(subtype="Label", id="title", fields={"text": "Details", "opacity": 1})
    details = Node(subtype="Group", id="details", fields={"opacity": 1}, children=[title])
    return Node(subtype="Scene", id="root", fields={"opacity": 1}, children=[grid, details])


@dataclass
class _Watcher:
    base: Base
    key_path: str
    last: Any


@dataclass
class FakeDevice:
    """In-process device that executes requests with :mod:`odcbridge.keypath`.

    Implements the transport interface directly: every request is applied
    to local state as soon as it is sent and its response is delivered on
    a later loop iteration.
    """

    global_fields: dict[str, Any] = field(default_factory=dict)
    scene: Node = field(default_factory=build_scene)
    registry: dict[str, dict[str, str]] = field(default_factory=dict)
    functions: dict[str, DeviceFunction] = field(default_factory=dict)
    delays: dict[str, float] = field(default_factory=dict)
    silent_kinds: set[str] = field(default_factory=set)
    fail_sends: bool = False
    send_delay: float = 0.0
    focused: Node | None = None
    requests: list[RequestEnvelope] = field(default_factory=list)
    watchers: dict[int, _Watcher] = field(default_factory=dict)
    _receiver: EnvelopeReceiver | None = None
    _on_link_lost: LinkLostCallback | None = None

    def set_receiver(
        self,
        receiver: EnvelopeReceiver | None,
        on_link_lost: LinkLostCallback | None = None,
    ) -> None:
        self._receiver = receiver
        self._on_link_lost = on_link_lost

    async def send(self, envelope: RequestEnvelope, *, timeout: float) -> None:
        if self.fail_sends:
            raise TransportError("broker unavailable")
        if self.send_delay:
            await asyncio.sleep(self.send_delay)
        self.requests.append(envelope)
        if envelope.kind in self.silent_kinds:
            return
        reply = self._execute(envelope)
        self._schedule(reply, self.delays.get(envelope.kind, 0.0))

    def kinds(self) -> list[str]:
        return [request.kind for request in self.requests]

    def lose_link(self) -> None:
        if self._on_link_lost is not None:
            self._on_link_lost(TransportError("link lost"))

    def push(self, envelope: InboundEnvelope, delay: float = 0.0) -> None:
        """Deliver an arbitrary envelope, as a misbehaving device would."""
        self._schedule(envelope, delay)

    def push_raw(self, payload: bytes) -> None:
        if self._receiver is not None:
            self._receiver(payload)

    def set_value(self, key_path: str, value: Any, base: Base | str = Base.GLOBAL) -> None:
        """Mutate device state directly and notify watchers, like app code would."""
        parent, segment = resolve_parent(self._root(Base.coerce(base)), key_path)
        assign(parent, segment, value, defaults=subtype_defaults)
        self._notify_watchers()

    async def wait_for_watchers(self, count: int = 1, timeout: float = 1.0) -> None:
        async with asyncio.timeout(timeout):
            while len(self.watchers) < count:
                await asyncio.sleep(0.001)

    def _schedule(self, envelope: InboundEnvelope, delay: float) -> None:
        loop = asyncio.get_running_loop()
        payload = encode_inbound(envelope)
        if delay:
            loop.call_later(delay, self.push_raw, payload)
        else:
            loop.call_soon(self.push_raw, payload)

    def _root(self, base: Base) -> Any:
        return self.scene if base is Base.SCENE else self.global_fields

    def _execute(self, envelope: RequestEnvelope) -> InboundEnvelope:
        handler = getattr(self, f"_handle_{envelope.kind}", None)
        if handler is None:
            return InboundEnvelope(
                id=envelope.id,
                success=False,
                error=ErrorInfo(kind="UnknownRequest", message=envelope.kind),
            )
        try:
            result = handler(envelope.id, envelope.args)
        except BridgeError as exc:
            return InboundEnvelope(
                id=envelope.id,
                success=False,
                error=ErrorInfo(kind=exc.kind, message=exc.message),
            )
        return InboundEnvelope(id=envelope.id, result=result, time_taken=0.001)

    def _target(self, args: dict[str, Any]) -> Any:
        base = Base.coerce(args.get("base"))
        resolution = resolve(self._root(base), args.get("keyPath", ""))
        if not resolution.found:
            raise KeyPathNotFound(f"Key path '{args.get('keyPath')}' does not resolve")
        return resolution.value

    def _target_node(self, args: dict[str, Any]) -> Node:
        value = self._target(args)
        if not isinstance(value, Node):
            raise KeyPathNotFound(f"Key path '{args.get('keyPath')}' is not a node")
        return value

    def _notify_watchers(self) -> None:
        for observer_id, watcher in list(self.watchers.items()):
            resolution = resolve(self._root(watcher.base), watcher.key_path)
            if not resolution.found or resolution.value == watcher.last:
                continue
            watcher.last = resolution.value
            self._schedule(
                InboundEnvelope(
                    id=observer_id,
                    event=EventKind.FIELD_CHANGED,
                    result={"value": encode_value(resolution.value)},
                ),
                0.0,
            )

    def _handle_getValueAtKeyPath(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        resolution = resolve(self._root(Base.coerce(args.get("base"))), args.get("keyPath", ""))
        if not resolution.found:
            return {"found": False}
        return {"found": True, "value": encode_value(resolution.value)}

    def _handle_getValuesAtKeyPaths(self, request_id: int, args: dict[str, Any]) -> dict[str, Any]:
        return {
            "results": {
                name: self._handle_getValueAtKeyPath(request_id, target)
                for name, target in args.get("requests", {}).items()
            }
        }

    def _handle_setValueAtKeyPath(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        base = Base.coerce(args.get("base"))
        parent, segment = resolve_parent(self._root(base), args.get("keyPath", ""))
        assign(parent, segment, decode_value(args.get("value")), defaults=subtype_defaults)
        self._notify_watchers()
        return {}

    def _handle_getFocusedNode(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        return {"node": encode_value(self.focused)}

    def _handle_hasFocus(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        node = self._target_node(args)
        return {"hasFocus": node is self.focused}

    def _handle_isInFocusChain(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        node = self._target_node(args)
        chain = ancestors_of(self.scene, self.focused) if self.focused is not None else None
        return {"isInFocusChain": any(item is node for item in chain or ())}

    def _handle_observeField(self, request_id: int, args: dict[str, Any]) -> dict[str, Any]:
        value = self._target(args)
        self.watchers[request_id] = _Watcher(
            base=Base.coerce(args.get("base")),
            key_path=args.get("keyPath", ""),
            last=value,
        )
        return {"value": encode_value(value)}

    def _handle_unobserveField(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        self.watchers.pop(args.get("observerId"), None)
        return {}

    def _handle_callFunc(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        node = self._target_node(args)
        func = self.functions.get(args.get("funcName", ""))
        if func is None:
            raise FuncNotFound(f"{node.subtype} has no function '{args.get('funcName')}'")
        params = [decode_value(param) for param in args.get("funcParams", [])]
        return {"value": encode_value(func(node, *params))}

    def _handle_readRegistry(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        wanted = args.get("values")
        if wanted is None:
            return {"values": {section: dict(keys) for section, keys in self.registry.items()}}
        values: dict[str, dict[str, str]] = {}
        for section, keys in wanted.items():
            stored = self.registry.get(section)
            if stored is None:
                continue
            selected = {key: stored[key] for key in keys if key in stored} if keys else dict(stored)
            if selected:
                values[section] = selected
        return {"values": values}

    def _handle_writeRegistry(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        for section, entries in args.get("values", {}).items():
            stored = self.registry.setdefault(section, {})
            for key, value in entries.items():
                if value is None:
                    stored.pop(key, None)
                else:
                    stored[key] = value
            if not stored:
                del self.registry[section]
        return {}

    def _handle_deleteRegistrySections(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        for section in args.get("sections", []):
            self.registry.pop(section, None)
        return {}

    def _handle_deleteEntireRegistry(self, _: int, args: dict[str, Any]) -> dict[str, Any]:
        self.registry.clear()
        return {}


__all__ = ["FakeDevice", "SUBTYPE_DEFAULTS", "build_scene", "subtype_defaults"]
