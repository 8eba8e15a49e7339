"""Render nodes making up a compiled template."""

from __future__ import annotations

import html
from typing import TYPE_CHECKING
from typing import Iterable
from typing import Mapping
from typing import NamedTuple
from typing import Protocol
from typing import Sized
from typing import TypeAlias

from . import codec
from .access import MISSING
from .exceptions import DirectiveSyntaxError
from .exceptions import SectionStateError
from .exceptions import TemplateNotFound
from .expressions import Expression
from .expressions import Scope
from .state import RenderState

if TYPE_CHECKING:
    from .compiler import CompiledTemplate
    from .registry import FunctionRegistry


class Markup(Protocol):
    """The interface for a directive or output node."""

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        """Render this node to _buffer_ with reference to variables in _context_."""
        ...


Node: TypeAlias = "str | Markup"


class Loader(Protocol):
    """Something that can find compiled templates by identifier."""

    def load(self, template_id: str, scope: Scope) -> CompiledTemplate: ...


class RenderContext:
    """Everything a node needs while rendering.

    Included templates get a copy with their own scope. The render state,
    registry and loader are shared for the whole render.
    """

    def __init__(
        self,
        scope: Scope,
        state: RenderState,
        registry: FunctionRegistry,
        *,
        loader: Loader | None = None,
        strict: bool = False,
        strict_yield: bool = False,
        yield_fallback: str = "",
    ):
        self.scope = scope
        self.state = state
        self.registry = registry
        self.loader = loader
        self.strict = strict
        self.strict_yield = strict_yield
        self.yield_fallback = yield_fallback

    def copy(self, scope: Scope) -> RenderContext:
        return RenderContext(
            scope,
            self.state,
            self.registry,
            loader=self.loader,
            strict=self.strict,
            strict_yield=self.strict_yield,
            yield_fallback=self.yield_fallback,
        )

    def include(
        self,
        template_id: str,
        data: Mapping[str, object],
        buffer: list[str],
    ) -> None:
        if self.loader is None:
            raise TemplateNotFound(
                f"can't include {template_id!r} without a template loader",
                fragment=template_id,
            )
        scope = self.scope.child(dict(data))
        self.loader.load(template_id, scope).render(self.copy(scope), buffer)


def to_text(value: object) -> str:
    if value is None or value is MISSING:
        return ""
    return str(value)


def escape(value: object) -> str:
    if hasattr(value, "__html__"):
        return str(value.__html__())
    return html.escape(to_text(value), quote=True)


def render_block(
    nodes: Iterable[Node],
    context: RenderContext,
    buffer: list[str],
) -> None:
    for node in nodes:
        if isinstance(node, str):
            buffer.append(node)
        else:
            node.render(context, buffer)


def _evaluate_data(
    expression: Expression | None,
    context: RenderContext,
    directive: str,
) -> Mapping[str, object]:
    if expression is None:
        return {}
    data = expression.evaluate(context)
    if data is None or data is MISSING:
        return {}
    if not isinstance(data, Mapping):
        raise DirectiveSyntaxError(
            f"'@{directive}' data must be a mapping, found {type(data).__name__}",
            origin=f"@{directive}",
        )
    return data


def _pairs(value: object) -> Iterable[tuple[object, object]]:
    if value is None or value is MISSING or isinstance(value, (str, bytes)):
        return ()
    if isinstance(value, Mapping):
        return value.items()
    if isinstance(value, Iterable):
        return enumerate(value)
    return ()


def _bound(value: object) -> int:
    if value is None or value is MISSING:
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        return int(value) if value.strip().lstrip("-").isdigit() else len(value)
    if isinstance(value, Sized):
        return len(value)
    raise DirectiveSyntaxError(
        f"'@for' bounds must be numbers or collections, found {type(value).__name__}",
        origin="@for",
    )


class _BreakLoop(Exception):
    pass


class _ContinueLoop(Exception):
    pass


@codec.register
class Output(NamedTuple):
    expression: Expression
    escaped: bool

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        value = self.expression.evaluate(context)
        buffer.append(escape(value) if self.escaped else to_text(value))


@codec.register
class Branch(NamedTuple):
    condition: Expression
    body: tuple[Node, ...]


@codec.register
class IfBlock(NamedTuple):
    branches: tuple[Branch, ...]
    default: tuple[Node, ...] | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        for branch in self.branches:
            if branch.condition.evaluate(context):
                render_block(branch.body, context, buffer)
                return

        if self.default:
            render_block(self.default, context, buffer)


def _loop(
    target: object,
    key: str | None,
    item: str,
    body: tuple[Node, ...],
    context: RenderContext,
    buffer: list[str],
) -> bool:
    """Render _body_ once per item in _target_. Return True if any item was seen."""
    namespace: dict[str, object] = {}
    rendered = False

    with context.scope.extend(namespace):
        for k, v in _pairs(target):
            if key:
                namespace[key] = k
            namespace[item] = v
            rendered = True

            try:
                render_block(body, context, buffer)
            except _ContinueLoop:
                continue
            except _BreakLoop:
                break

    return rendered


@codec.register
class ForeachBlock(NamedTuple):
    target: Expression
    key: str | None
    item: str
    body: tuple[Node, ...]

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        _loop(
            self.target.evaluate(context),
            self.key,
            self.item,
            self.body,
            context,
            buffer,
        )


@codec.register
class ForelseBlock(NamedTuple):
    target: Expression
    key: str | None
    item: str
    body: tuple[Node, ...]
    empty: tuple[Node, ...]

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        rendered = _loop(
            self.target.evaluate(context),
            self.key,
            self.item,
            self.body,
            context,
            buffer,
        )

        if not rendered:
            render_block(self.empty, context, buffer)


@codec.register
class ForBlock(NamedTuple):
    name: str
    start: Expression
    end: Expression
    body: tuple[Node, ...]

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        start = _bound(self.start.evaluate(context))
        end = _bound(self.end.evaluate(context))
        namespace: dict[str, object] = {}

        with context.scope.extend(namespace):
            for i in range(start, end):
                namespace[self.name] = i
                try:
                    render_block(self.body, context, buffer)
                except _ContinueLoop:
                    continue
                except _BreakLoop:
                    break


@codec.register
class WhileBlock(NamedTuple):
    condition: Expression
    body: tuple[Node, ...]

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        while self.condition.evaluate(context):
            try:
                render_block(self.body, context, buffer)
            except _ContinueLoop:
                continue
            except _BreakLoop:
                break


@codec.register
class Case(NamedTuple):
    value: Expression | None
    body: tuple[Node, ...]


@codec.register
class SwitchBlock(NamedTuple):
    """Cases fall through to the next one until a `@break`."""

    subject: Expression
    cases: tuple[Case, ...]

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        subject = self.subject.evaluate(context)
        start: int | None = None

        for i, case in enumerate(self.cases):
            if case.value is not None and case.value.evaluate(context) == subject:
                start = i
                break
        else:
            for i, case in enumerate(self.cases):
                if case.value is None:
                    start = i
                    break

        if start is None:
            return

        try:
            for case in self.cases[start:]:
                render_block(case.body, context, buffer)
        except _BreakLoop:
            pass


@codec.register
class Break(NamedTuple):
    condition: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        if self.condition is None or self.condition.evaluate(context):
            raise _BreakLoop


@codec.register
class Continue(NamedTuple):
    condition: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        if self.condition is None or self.condition.evaluate(context):
            raise _ContinueLoop


@codec.register
class SetVariable(NamedTuple):
    name: str
    expression: Expression

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        context.scope.assign(self.name, self.expression.evaluate(context))


@codec.register
class Include(NamedTuple):
    template: Expression
    data: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        context.include(
            to_text(self.template.evaluate(context)),
            _evaluate_data(self.data, context, "include"),
            buffer,
        )


RAW_PREFIX = "raw|"


@codec.register
class Each(NamedTuple):
    """Include _template_ once per item, binding the item to _name_.

    When the collection is empty, a fallback starting with `raw|` is output
    as literal text. Any other fallback names a template to include.
    """

    template: Expression
    items: Expression
    name: str
    fallback: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        template_id = to_text(self.template.evaluate(context))
        items = list(_pairs(self.items.evaluate(context)))

        if not items and self.fallback is not None:
            fallback = to_text(self.fallback.evaluate(context))
            if fallback.startswith(RAW_PREFIX):
                buffer.append(fallback[len(RAW_PREFIX) :])
            else:
                context.include(fallback, {}, buffer)
            return

        for _, item in items:
            context.include(template_id, {self.name: item}, buffer)


@codec.register
class Extends(NamedTuple):
    template: Expression
    data: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        context.state.extend(
            to_text(self.template.evaluate(context)),
            _evaluate_data(self.data, context, "extends"),
        )


@codec.register
class Section(NamedTuple):
    name: Expression
    body: tuple[Node, ...]
    content: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        name = to_text(self.name.evaluate(context))

        if self.content is not None:
            context.state.put_section(name, escape(self.content.evaluate(context)))
            return

        sink = context.state.begin_section(name)
        render_block(self.body, context, sink)
        context.state.end_section()


@codec.register
class Yield(NamedTuple):
    name: Expression
    default: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        name = to_text(self.name.evaluate(context))
        content = context.state.section(name)

        if content is not None:
            buffer.append(content)
        elif self.default is not None:
            buffer.append(escape(self.default.evaluate(context)))
        elif context.strict_yield:
            raise SectionStateError(
                f"section {name!r} is not defined", fragment=name, origin="@yield"
            )
        else:
            buffer.append(context.yield_fallback)


@codec.register
class Push(NamedTuple):
    name: Expression
    body: tuple[Node, ...]
    content: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        name = to_text(self.name.evaluate(context))

        if self.content is not None:
            context.state.push(name, escape(self.content.evaluate(context)))
            return

        sink = context.state.begin_push(name)
        render_block(self.body, context, sink)
        context.state.end_push()


@codec.register
class Stack(NamedTuple):
    name: Expression
    default: Expression | None

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        default = "" if self.default is None else escape(self.default.evaluate(context))
        buffer.append(
            context.state.stack(to_text(self.name.evaluate(context)), default)
        )


@codec.register
class CustomDirective(NamedTuple):
    name: str
    args: tuple[Expression, ...]

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        args = [arg.evaluate(context) for arg in self.args]
        buffer.append(
            to_text(
                context.registry.call_directive(
                    self.name, *[None if arg is MISSING else arg for arg in args]
                )
            )
        )
