"""Compiled expression nodes and the scope they are evaluated against."""

from __future__ import annotations

import operator
import re
from collections import deque
from contextlib import contextmanager
from itertools import chain
from typing import TYPE_CHECKING
from typing import Callable
from typing import Iterator
from typing import Mapping
from typing import NamedTuple
from typing import Protocol

from . import codec
from .access import MISSING
from .access import MappingReader
from .access import ObjectReader
from .access import Shape
from .access import SequenceReader
from .access import reader_for
from .access import shape_of
from .exceptions import InaccessibleMember
from .exceptions import InvalidExpression
from .exceptions import UndefinedVariable

if TYPE_CHECKING:
    from .nodes import RenderContext


class Expression(Protocol):
    """The interface for a compiled expression."""

    def evaluate(self, context: RenderContext) -> object:
        """Evaluate this expression with reference to variables in _context_."""
        ...


class Scope(Mapping[str, object]):
    """A chain of namespaces, innermost first.

    Every scope owns a `locals` namespace for `@set`. Loop namespaces are
    pushed in front of it for the duration of a loop.
    """

    def __init__(self, *maps: Mapping[str, object]):
        self.locals: dict[str, object] = {}
        self._maps = deque([self.locals, *maps])

    def __getitem__(self, key: str) -> object:
        for mapping in self._maps:
            try:
                return mapping[key]
            except KeyError:
                pass
        raise KeyError(key)

    def __iter__(self) -> Iterator[str]:
        return chain(*self._maps)

    def __len__(self) -> int:
        return sum(len(_map) for _map in self._maps)

    def get(self, key: str, default: object = MISSING) -> object:
        try:
            return self[key]
        except KeyError:
            return default

    def push(self, namespace: Mapping[str, object]) -> None:
        self._maps.appendleft(namespace)

    def pop(self) -> Mapping[str, object]:
        return self._maps.popleft()

    @contextmanager
    def extend(self, namespace: Mapping[str, object]) -> Iterator[Scope]:
        self.push(namespace)
        try:
            yield self
        finally:
            self.pop()

    def assign(self, name: str, value: object) -> None:
        for mapping in self._maps:
            if mapping is self.locals:
                break
            if name in mapping:
                mapping[name] = value  # type: ignore[index]
                return
        self.locals[name] = value

    def child(self, *maps: Mapping[str, object]) -> Scope:
        """Return a new scope that sees _maps_ in front of this one."""
        return Scope(*maps, *self._maps)


def _unquote(text: str) -> str:
    quote = text[0]
    return re.sub(r"\\([\\" + quote + r"])", r"\1", text[1:-1])


def _plain(value: object) -> object:
    return None if value is MISSING else value


@codec.register
class Literal(NamedTuple):
    value: bool | None

    def evaluate(self, context: RenderContext) -> object:
        return self.value


@codec.register
class Number(NamedTuple):
    text: str

    def evaluate(self, context: RenderContext) -> object:
        if "." in self.text:
            return float(self.text)
        return int(self.text)


@codec.register
class StringLiteral(NamedTuple):
    text: str

    def evaluate(self, context: RenderContext) -> object:
        return _unquote(self.text)


@codec.register
class ArrayLiteral(NamedTuple):
    items: tuple[Expression, ...]

    def evaluate(self, context: RenderContext) -> object:
        return [item.evaluate(context) for item in self.items]


@codec.register
class Segment(NamedTuple):
    """One step of a variable path.

    `access` is one of `key`, `member`, `method`, `getter`, `call`, `index`
    or `lookup`. Lookups were compiled without shape information and go
    through the field reader for whatever value turns up at render time.
    """

    access: str
    name: str
    args: tuple[Expression, ...]

    def read(self, obj: object, path: VariablePath, context: RenderContext) -> object:
        if obj is MISSING or obj is None:
            if context.strict:
                raise InaccessibleMember(
                    f"can't read {self.name or 'an index'!r} of undefined "
                    f"{path.root!r}",
                    fragment=path.text,
                )
            return MISSING

        access = self.access

        if access == "index":
            index = self.args[0].evaluate(context)
            try:
                return obj[index]  # type: ignore[index]
            except (KeyError, IndexError, TypeError):
                return MISSING

        if access == "key":
            shape = shape_of(obj)
            if shape is Shape.MAPPING:
                return MappingReader(obj).try_read(self.name)  # type: ignore[arg-type]
            if shape is Shape.SEQUENCE:
                return SequenceReader(obj).try_read(self.name)  # type: ignore[arg-type]

        if access == "call":
            method = getattr(obj, self.name, None)
            if self.name.startswith("_") or not callable(method):
                raise InaccessibleMember(
                    f"can't call {self.name!r} on {path.root!r}",
                    fragment=path.text,
                )
            return method(*[arg.evaluate(context) for arg in self.args])

        if access in ("member", "method", "getter"):
            attr = getattr(obj, self.name, MISSING)
            if attr is not MISSING:
                return attr if access == "member" else attr()

        reader = reader_for(obj)
        value = reader.try_read(self.name)
        if value is MISSING and not isinstance(reader, (MappingReader, SequenceReader)):
            kind = "object" if isinstance(reader, ObjectReader) else "scalar"
            raise InaccessibleMember(
                f"can't access {self.name!r} on {path.root!r}: "
                f"no public member, method or getter on {kind} "
                f"{type(obj).__name__!r}",
                fragment=path.text,
            )
        return value


@codec.register
class VariablePath(NamedTuple):
    text: str
    root: str
    segments: tuple[Segment, ...]

    def evaluate(self, context: RenderContext) -> object:
        try:
            obj = context.scope[self.root]
        except KeyError:
            if context.strict:
                raise UndefinedVariable(
                    f"variable {self.root!r} is not defined", fragment=self.text
                ) from None
            return MISSING

        for segment in self.segments:
            obj = segment.read(obj, self, context)
        return obj


@codec.register
class FilterApplication(NamedTuple):
    inner: Expression
    name: str
    args: tuple[Expression, ...]

    def evaluate(self, context: RenderContext) -> object:
        value = _plain(self.inner.evaluate(context))
        args = [_plain(arg.evaluate(context)) for arg in self.args]
        return context.registry.resolve_filter(self.name, value, *args)


@codec.register
class FunctionCall(NamedTuple):
    name: str
    args: tuple[Expression, ...]

    def evaluate(self, context: RenderContext) -> object:
        args = [_plain(arg.evaluate(context)) for arg in self.args]
        return context.registry.resolve_function(self.name, *args)


def _identical(left: object, right: object) -> bool:
    return type(left) is type(right) and left == right


COMPARISONS: dict[str, Callable[[object, object], bool]] = {
    "===": _identical,
    "!==": lambda left, right: not _identical(left, right),
    "==": operator.eq,
    "!=": operator.ne,
    "<>": operator.ne,
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
}

_ORDERING = frozenset([">=", "<=", ">", "<"])


@codec.register
class Comparison(NamedTuple):
    left: Expression
    op: str
    right: Expression

    def evaluate(self, context: RenderContext) -> object:
        left = _plain(self.left.evaluate(context))
        right = _plain(self.right.evaluate(context))
        if (
            self.op in _ORDERING
            and not context.strict
            and (left is None or right is None)
        ):
            return False
        try:
            return COMPARISONS[self.op](left, right)
        except TypeError as err:
            raise InvalidExpression(
                f"can't compare {left!r} {self.op} {right!r}",
                fragment=self.op,
            ) from err


@codec.register
class LogicalAnd(NamedTuple):
    left: Expression
    right: Expression

    def evaluate(self, context: RenderContext) -> object:
        left = self.left.evaluate(context)
        if left:
            return self.right.evaluate(context)
        return left


@codec.register
class LogicalOr(NamedTuple):
    left: Expression
    right: Expression

    def evaluate(self, context: RenderContext) -> object:
        left = self.left.evaluate(context)
        if left:
            return left
        return self.right.evaluate(context)


@codec.register
class LogicalNot(NamedTuple):
    operand: Expression

    def evaluate(self, context: RenderContext) -> object:
        return not self.operand.evaluate(context)


@codec.register
class IssetTest(NamedTuple):
    expression: Expression

    def evaluate(self, context: RenderContext) -> object:
        try:
            value = self.expression.evaluate(context)
        except (UndefinedVariable, InaccessibleMember):
            return False
        return value is not None and value is not MISSING


@codec.register
class EmptyTest(NamedTuple):
    expression: Expression

    def evaluate(self, context: RenderContext) -> object:
        try:
            value = self.expression.evaluate(context)
        except (UndefinedVariable, InaccessibleMember):
            return True
        return not value


@codec.register
class CustomCondition(NamedTuple):
    name: str
    args: tuple[Expression, ...]

    def evaluate(self, context: RenderContext) -> object:
        args = [_plain(arg.evaluate(context)) for arg in self.args]
        return context.registry.check_condition(self.name, *args)
