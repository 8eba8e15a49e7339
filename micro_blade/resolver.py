"""Resolve expression text into expression nodes."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from typing import Iterator

from .access import UNDECLARED
from .access import UNKNOWN
from .access import MISSING
from .access import Shape
from .access import Shapes
from .access import reader_for
from .access import shape_of
from .exceptions import InaccessibleMember
from .exceptions import InvalidExpression
from .exceptions import UndefinedVariable
from .exceptions import UnknownFunction
from .expressions import ArrayLiteral
from .expressions import Expression
from .expressions import FunctionCall
from .expressions import Literal
from .expressions import Number
from .expressions import Segment
from .expressions import StringLiteral
from .expressions import VariablePath
from .scanner import find_closing

if TYPE_CHECKING:
    from .registry import FunctionRegistry


_RESERVED: dict[str, bool | None] = {"true": True, "false": False, "null": None}

_RE_NUMBER = re.compile(r"-?\d+(?:\.\d+)?")
_RE_STRING = re.compile(r"""(['"])(?:\\.|(?!\1).)*\1""", re.S)
_RE_IDENTIFIER = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_RE_SEGMENT = re.compile(r"[A-Za-z0-9_]+")
_RE_CALL = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*\(")

COMPARISON_OPERATORS = ("===", "!==", "==", "!=", "<>", ">=", "<=", ">", "<")


def _top_level(text: str) -> Iterator[int]:
    """Yield the index of every character in _text_ outside brackets and quotes."""
    depth = 0
    quote = ""
    escaped = False

    for i, ch in enumerate(text):
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == quote:
                quote = ""
        elif ch in ("'", '"'):
            quote = ch
        elif ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth < 0:
                raise InvalidExpression(
                    f"unbalanced brackets in {text!r}", fragment=text
                )
        elif depth == 0:
            yield i

    if quote:
        raise InvalidExpression(f"unterminated string in {text!r}", fragment=text)
    if depth:
        raise InvalidExpression(f"unbalanced brackets in {text!r}", fragment=text)


def _is_separator(text: str, i: int, separator: str) -> bool:
    if not text.startswith(separator, i):
        return False

    end = i + len(separator)

    if separator[0].isalpha():
        # Word operators need whitespace on both sides.
        if i == 0 or end >= len(text):
            return False
        return text[i - 1].isspace() and text[end].isspace()

    if separator == "|":
        return text[i - 1 : i] != "|" and text[end : end + 1] != "|"

    return True


def split_top_level(text: str, separator: str, maxsplit: int = -1) -> list[str]:
    """Split _text_ on _separator_, ignoring separators nested in brackets or
    quotes. Each part is stripped of surrounding whitespace."""
    parts: list[str] = []
    start = 0

    for i in _top_level(text):
        if i < start or (0 <= maxsplit <= len(parts)):
            continue
        if _is_separator(text, i, separator):
            parts.append(text[start:i].strip())
            start = i + len(separator)

    parts.append(text[start:].strip())
    return parts


def split_comparison(text: str) -> tuple[str, str, str] | None:
    """Split _text_ on its first top-level comparison operator."""
    for i in list(_top_level(text)):
        for op in COMPARISON_OPERATORS:
            if text.startswith(op, i):
                return text[:i].strip(), op, text[i + len(op) :].strip()
    return None


def _parse_path(text: str) -> tuple[str, list[tuple[str, str, str | None]]] | None:
    """Split a variable path into its root name and raw segments.

    Each segment is `("index", expr, None)` or `("field", name, args)`, where
    `args` is None unless the field is called.
    """
    match = _RE_IDENTIFIER.match(text)
    if match is None or match.end() == len(text):
        return None

    root = match[0]
    pos = match.end()
    parts: list[tuple[str, str, str | None]] = []

    while pos < len(text):
        ch = text[pos]

        if ch == "[":
            end = find_closing(text, pos)
            if end < 0:
                return None
            parts.append(("index", text[pos + 1 : end].strip(), None))
            pos = end + 1
        elif ch == ".":
            segment = _RE_SEGMENT.match(text, pos + 1)
            if segment is None:
                return None
            name = segment[0]
            pos = segment.end()
            args = None
            if text.startswith("(", pos):
                end = find_closing(text, pos)
                if end < 0:
                    return None
                args = text[pos + 1 : end]
                pos = end + 1
            parts.append(("field", name, args))
        else:
            return None

    return root, parts


def _sample(value: object) -> object:
    if value is None or value is MISSING:
        return UNKNOWN
    return value


class ExpressionResolver:
    """Build expression nodes from expression text.

    Dotted paths are classified against the sample values held by _shapes_,
    so `user.name` compiles to a key access for a mapping and to a member,
    method or getter access for an object.
    """

    def __init__(self, registry: FunctionRegistry, shapes: Shapes):
        self.registry = registry
        self.shapes = shapes

    def resolve(self, expr: str) -> Expression:
        text = expr.strip()

        if not text:
            raise InvalidExpression("empty expression", fragment=expr)

        if text in _RESERVED:
            return Literal(_RESERVED[text])

        if text.startswith("[") and find_closing(text, 0) == len(text) - 1:
            return ArrayLiteral(tuple(self.resolve_arguments(text[1:-1])))

        if _RE_NUMBER.fullmatch(text):
            return Number(text)

        path = _parse_path(text)
        if path is not None:
            root, parts = path
            if all(kind == "index" for kind, _, _ in parts):
                return VariablePath(
                    text,
                    root,
                    tuple(
                        Segment("index", "", (self.resolve(index),))
                        for _, index, _ in parts
                    ),
                )
            return self.resolve_path(text, root, parts)

        if _RE_STRING.fullmatch(text):
            return StringLiteral(text)

        match = _RE_CALL.match(text)
        if match and find_closing(text, match.end() - 1) == len(text) - 1:
            name = match[1]
            if not self.registry.has_function(name):
                raise UnknownFunction(f"unknown function {name!r}", fragment=text)
            return FunctionCall(
                name, tuple(self.resolve_arguments(text[match.end() : -1]))
            )

        if _RE_IDENTIFIER.fullmatch(text):
            return VariablePath(text, text, ())

        raise InvalidExpression(f"can't resolve expression {text!r}", fragment=text)

    def resolve_arguments(self, text: str) -> list[Expression]:
        if not text.strip():
            return []
        return [self.resolve(arg) for arg in split_top_level(text, ",")]

    def resolve_path(
        self,
        text: str,
        root: str,
        parts: list[tuple[str, str, str | None]],
    ) -> VariablePath:
        sample = self.shapes.lookup(root)

        if sample is UNDECLARED:
            raise UndefinedVariable(f"variable {root!r} is not defined", fragment=text)

        sample = _sample(sample)
        segments: list[Segment] = []

        for kind, name, args in parts:
            if kind == "index":
                segments.append(Segment("index", "", (self.resolve(name),)))
                sample = UNKNOWN
                continue

            shape = shape_of(sample)

            if args is not None:
                if name.startswith("_") or shape not in (Shape.OBJECT, Shape.UNKNOWN):
                    raise InaccessibleMember(
                        f"can't call {name!r} on {root!r}", fragment=text
                    )
                if shape is Shape.OBJECT and not callable(getattr(sample, name, None)):
                    raise InaccessibleMember(
                        f"{name!r} is not a method of {root!r}", fragment=text
                    )
                segments.append(
                    Segment("call", name, tuple(self.resolve_arguments(args)))
                )
                sample = UNKNOWN
                continue

            if shape is Shape.UNKNOWN:
                if name.startswith("_"):
                    raise InaccessibleMember(
                        f"can't access {name!r} on {root!r}", fragment=text
                    )
                segments.append(Segment("lookup", name, ()))
                continue

            reader = reader_for(sample)
            found = reader.accessor(name)

            if found is None:
                if shape is Shape.SCALAR:
                    reason = "it is neither an object nor a mapping"
                else:
                    reason = "no public member, method or getter of that name"
                raise InaccessibleMember(
                    f"can't access {name!r} on {root!r}: {reason}", fragment=text
                )

            access, attr = found
            segments.append(Segment(access, attr, ()))

            # Methods and getters are never called at compile time.
            if access == "key":
                sample = _sample(reader.try_read(name))
            elif access == "member":
                sample = _sample(getattr(sample, attr))
            else:
                sample = UNKNOWN

        return VariablePath(text, root, tuple(segments))
