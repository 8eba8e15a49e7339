"""Serialize compiled node trees to and from JSON text."""

from __future__ import annotations

import json
from typing import Any
from typing import TypeVar

FORMAT_VERSION = 1

_NODE_KEY = "__node__"
_NODE_TYPES: dict[str, type] = {}

T = TypeVar("T", bound=type)


class CodecError(ValueError):
    """Compiled text that can't be decoded into a node tree."""


def register(cls: T) -> T:
    """Class decorator making a NamedTuple node type serializable."""
    _NODE_TYPES[cls.__name__] = cls
    return cls


def _encode(obj: object) -> Any:
    if hasattr(obj, "_fields") and type(obj).__name__ in _NODE_TYPES:
        encoded = {_NODE_KEY: type(obj).__name__}
        for field in obj._fields:  # type: ignore[attr-defined]
            encoded[field] = _encode(getattr(obj, field))
        return encoded

    if isinstance(obj, (tuple, list)):
        return [_encode(item) for item in obj]

    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj

    raise TypeError(f"can't serialize {type(obj).__name__} in a compiled template")


def _decode(obj: Any) -> object:
    if isinstance(obj, dict):
        name = obj.get(_NODE_KEY)
        cls = _NODE_TYPES.get(name)  # type: ignore[arg-type]
        if cls is None:
            raise CodecError(f"unknown node type {name!r}")
        fields = {k: _decode(v) for k, v in obj.items() if k != _NODE_KEY}
        try:
            return cls(**fields)
        except TypeError as err:
            raise CodecError(f"malformed {name} node: {err}") from err

    if isinstance(obj, list):
        return tuple(_decode(item) for item in obj)

    return obj


def dumps(nodes: tuple[object, ...]) -> str:
    return json.dumps(
        {"version": FORMAT_VERSION, "nodes": _encode(nodes)},
        sort_keys=True,
        ensure_ascii=False,
        separators=(",", ":"),
    )


def loads(text: str) -> tuple[object, ...]:
    try:
        document = json.loads(text)
    except json.JSONDecodeError as err:
        raise CodecError(f"compiled template is not valid JSON: {err}") from err

    if not isinstance(document, dict) or document.get("version") != FORMAT_VERSION:
        raise CodecError("unsupported compiled template format")

    nodes = _decode(document.get("nodes", []))
    if not isinstance(nodes, tuple):
        raise CodecError("compiled template must hold a list of nodes")
    return nodes
