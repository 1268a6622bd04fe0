"""Key-path contract for addressing values inside the live node graph.

A key path is a dot separated list of segments. A segment is either an
identifier (field name, map key or node id) or an integer literal (child or
array index, negative values count from the end).

Resolution rules:

* The first segment, when the starting context is a :class:`Node` and the
  segment names neither a field nor a direct child, triggers a depth-first
  search of the whole subtree for a node with that id.
* Every later segment is local to the current context: node field, then
  direct child id; child index; array index; map key.
* Any other combination stops resolution with ``found=False``.

The device executes these rules; the client uses this module to validate
paths before they are sent, and any device-side engine can share it.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator, Mapping, Sequence
from typing import Any

import msgspec

from .errors import KeyPathNotFound
from .protocol.values import Node, is_node_description

_INDEX_RE = re.compile(r"^-?\d+$")

DefaultsProvider = Callable[[str], Mapping[str, Any]]


class Segment(msgspec.Struct, frozen=True):
    text: str

    @property
    def index(self) -> int | None:
        if _INDEX_RE.match(self.text):
            return int(self.text)
        return None


class Resolution(msgspec.Struct, frozen=True):
    found: bool
    value: Any = None


NOT_FOUND = Resolution(found=False)


def parse_key_path(key_path: str) -> tuple[Segment, ...]:
    """Split *key_path* into segments; the empty path addresses the root."""
    if not key_path:
        return ()
    parts = key_path.split(".")
    if any(not part.strip() for part in parts):
        raise KeyPathNotFound(f"Malformed key path '{key_path}'")
    return tuple(Segment(part.strip()) for part in parts)


def is_valid_key_path(key_path: str) -> bool:
    try:
        parse_key_path(key_path)
    except KeyPathNotFound:
        return False
    return True


def _normalize_index(length: int, index: int) -> int | None:
    position = index + length if index < 0 else index
    if 0 <= position < length:
        return position
    return None


def _at_index(items: Sequence[Any], index: int) -> tuple[bool, Any]:
    position = _normalize_index(len(items), index)
    if position is None:
        return False, None
    return True, items[position]


def iter_descendants(root: Node) -> Iterator[Node]:
    """Depth-first, pre-order walk of every node beneath *root*."""
    stack = list(reversed(root.children))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def find_node_by_id(root: Node, node_id: str) -> Node | None:
    for node in iter_descendants(root):
        if node.id == node_id:
            return node
    return None


def ancestors_of(root: Node, target: Node) -> list[Node] | None:
    """Return the chain ``[root, ..., target]`` or ``None`` if detached."""
    if root is target:
        return [root]
    for child in root.children:
        chain = ancestors_of(child, target)
        if chain is not None:
            return [root, *chain]
    return None


def _step(context: Any, segment: Segment, *, search_subtree: bool) -> tuple[bool, Any]:
    index = segment.index
    match context:
        case Node():
            if index is not None:
                return _at_index(context.children, index)
            found, value = context.lookup(segment.text)
            if found:
                return True, value
            child = context.child_by_id(segment.text)
            if child is not None:
                return True, child
            if search_subtree:
                node = find_node_by_id(context, segment.text)
                if node is not None:
                    return True, node
            return False, None
        case list() | tuple():
            if index is None:
                return False, None
            return _at_index(context, index)
        case Mapping():
            if index is not None or segment.text not in context:
                return False, None
            return True, context[segment.text]
        case _:
            return False, None


def resolve(root: Any, key_path: str | Sequence[Segment]) -> Resolution:
    """Resolve *key_path* against *root*; never raises for a missing path."""
    if isinstance(key_path, str):
        try:
            segments: Sequence[Segment] = parse_key_path(key_path)
        except KeyPathNotFound:
            return NOT_FOUND
    else:
        segments = key_path

    context = root
    for position, segment in enumerate(segments):
        found, context = _step(context, segment, search_subtree=position == 0)
        if not found:
            return NOT_FOUND
    return Resolution(found=True, value=context)


def resolve_parent(root: Any, key_path: str) -> tuple[Any, Segment]:
    """Resolve every segment but the last; raise if any of them is missing."""
    segments = parse_key_path(key_path)
    if not segments:
        raise KeyPathNotFound("Cannot assign to the base root")
    parent = resolve(root, segments[:-1])
    if not parent.found:
        raise KeyPathNotFound(f"Key path '{key_path}' does not resolve")
    return parent.value, segments[-1]


def build_node(
    description: Mapping[str, Any] | Node,
    defaults: DefaultsProvider,
    *,
    inherited_subtype: str | None = None,
) -> Node:
    """Create a node from ``{subtype, id?, children?, **fields}``.

    Fields absent from the description take the subtype defaults. Children
    without a subtype inherit the parent's.
    """
    if isinstance(description, Node):
        return description
    subtype = description.get("subtype") or inherited_subtype
    if not subtype:
        raise KeyPathNotFound("Node description requires a subtype")
    fields = dict(defaults(subtype))
    for key, value in description.items():
        if key in ("subtype", "children", "id"):
            continue
        fields[key] = value
    children = [
        build_node(child, defaults, inherited_subtype=subtype)
        for child in description.get("children") or ()
    ]
    return Node(
        subtype=subtype,
        id=str(description.get("id", "")),
        fields=fields,
        children=children,
    )


def assign(
    container: Any,
    segment: Segment,
    value: Any,
    *,
    defaults: DefaultsProvider | None = None,
) -> Any:
    """Store *value* at *segment* of *container* and return what was stored.

    Node descriptions become new nodes when *defaults* is supplied. ``None``
    written to a map key removes the key.
    """
    if defaults is not None and is_node_description(value):
        value = build_node(value, defaults)

    index = segment.index
    match container:
        case Node():
            if index is not None:
                position = _normalize_index(len(container.children), index)
                if position is None or not isinstance(value, Node):
                    raise KeyPathNotFound(f"No child slot at index {index}")
                container.children[position] = value
            elif segment.text == "id":
                container.id = str(value)
            else:
                container.fields[segment.text] = value
        case list():
            position = None if index is None else _normalize_index(len(container), index)
            if position is None:
                raise KeyPathNotFound(f"No array slot '{segment.text}'")
            container[position] = value
        case dict():
            if index is not None:
                raise KeyPathNotFound(f"Numeric segment '{segment.text}' on a map")
            if value is None:
                container.pop(segment.text, None)
            else:
                container[segment.text] = value
        case _:
            raise KeyPathNotFound(f"Cannot assign '{segment.text}' on {type(container).__name__}")
    return value


__all__ = [
    "NOT_FOUND",
    "Resolution",
    "Segment",
    "ancestors_of",
    "assign",
    "build_node",
    "find_node_by_id",
    "is_valid_key_path",
    "iter_descendants",
    "parse_key_path",
    "resolve",
    "resolve_parent",
]
