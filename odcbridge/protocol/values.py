"""Value model exchanged with the on-device component.

A value is one of ``None``, ``bool``, ``int``, ``float``, ``str``, ``list``,
``dict`` or :class:`Node`. Lists are addressed by index and dicts by key;
the two are never interchangeable. On the wire a node travels as a JSON
object holding the single reserved key ``"$node"``.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any, TypeAlias

import msgspec

from ..const import NODE_WIRE_KEY
from ..errors import InvalidBase


class Base(StrEnum):
    """Named roots a key path is resolved against."""

    GLOBAL = "global"
    SCENE = "scene"

    @classmethod
    def coerce(cls, value: Base | str | None) -> Base:
        if value is None:
            return cls.GLOBAL
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value))
        except ValueError:
            raise InvalidBase(f"Unknown base '{value}'") from None


def _fields_factory() -> dict[str, Any]:
    return {}


def _children_factory() -> list[Node]:
    return []


class Node(msgspec.Struct):
    """Snapshot of a live node in the application graph."""

    subtype: str
    id: str = ""
    fields: dict[str, Any] = msgspec.field(default_factory=_fields_factory)
    children: list[Node] = msgspec.field(default_factory=_children_factory)

    def lookup(self, name: str) -> tuple[bool, Any]:
        """Return ``(found, value)`` for a field, ``id`` included."""
        if name == "id":
            return True, self.id
        if name in self.fields:
            return True, self.fields[name]
        return False, None

    def child_by_id(self, node_id: str) -> Node | None:
        for child in self.children:
            if child.id == node_id:
                return child
        return None

    def __getitem__(self, name: str) -> Any:
        found, value = self.lookup(name)
        if not found:
            raise KeyError(name)
        return value


Value: TypeAlias = None | bool | int | float | str | list[Any] | dict[str, Any] | Node


def encode_value(value: Any) -> Any:
    """Convert a :data:`Value` into JSON-compatible builtins."""
    match value:
        case None | bool() | int() | float() | str():
            return value
        case Node():
            return {
                NODE_WIRE_KEY: {
                    "id": value.id,
                    "subtype": value.subtype,
                    "fields": {key: encode_value(item) for key, item in value.fields.items()},
                    "children": [encode_value(child) for child in value.children],
                }
            }
        case list() | tuple():
            return [encode_value(item) for item in value]
        case Mapping():
            return {str(key): encode_value(item) for key, item in value.items()}
        case _:
            raise TypeError(f"Unsupported value type: {type(value).__name__}")


def decode_value(raw: Any) -> Any:
    """Inverse of :func:`encode_value`."""
    match raw:
        case None | bool() | int() | float() | str():
            return raw
        case list():
            return [decode_value(item) for item in raw]
        case dict() if len(raw) == 1 and NODE_WIRE_KEY in raw:
            body = raw[NODE_WIRE_KEY] or {}
            return Node(
                subtype=str(body.get("subtype", "")),
                id=str(body.get("id", "")),
                fields={key: decode_value(item) for key, item in (body.get("fields") or {}).items()},
                children=[decode_value(child) for child in body.get("children") or ()],
            )
        case dict():
            return {key: decode_value(item) for key, item in raw.items()}
        case _:
            raise TypeError(f"Unsupported wire value: {type(raw).__name__}")


def describe_node(subtype: str, *, children: list[Mapping[str, Any]] | None = None, **fields: Any) -> dict[str, Any]:
    """Build the structured description that makes the device create a node."""
    description: dict[str, Any] = {"subtype": subtype, **fields}
    if children is not None:
        description["children"] = [dict(child) for child in children]
    return description


def is_node_description(value: Any) -> bool:
    return isinstance(value, Mapping) and isinstance(value.get("subtype"), str)


__all__ = [
    "Base",
    "Node",
    "Value",
    "decode_value",
    "describe_node",
    "encode_value",
    "is_node_description",
]
