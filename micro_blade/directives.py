"""Compile directive tokens into a tree of render nodes.

Block directives are matched with a stack of open frames during a single
pass over the token stream. Each frame collects the nodes of the block it
opened and, when the matching end directive arrives, is replaced by one node
in its parent's body.
"""

from __future__ import annotations

import re
from collections import deque
from functools import reduce
from typing import TYPE_CHECKING
from typing import Callable

from .access import Shapes
from .exceptions import DirectiveSyntaxError
from .exceptions import InvalidExpression
from .exceptions import SectionStateError
from .exceptions import UnknownDirective
from .expressions import Comparison
from .expressions import CustomCondition
from .expressions import EmptyTest
from .expressions import Expression
from .expressions import IssetTest
from .expressions import LogicalAnd
from .expressions import LogicalNot
from .expressions import LogicalOr
from .nodes import Branch
from .nodes import Break
from .nodes import Case
from .nodes import Continue
from .nodes import CustomDirective
from .nodes import Each
from .nodes import Extends
from .nodes import ForBlock
from .nodes import ForeachBlock
from .nodes import ForelseBlock
from .nodes import IfBlock
from .nodes import Include
from .nodes import Node
from .nodes import Output
from .nodes import Push
from .nodes import Section
from .nodes import SetVariable
from .nodes import Stack
from .nodes import SwitchBlock
from .nodes import WhileBlock
from .nodes import Yield
from .pipeline import FilterPipeline
from .resolver import ExpressionResolver
from .resolver import split_comparison
from .resolver import split_top_level
from .scanner import Token
from .scanner import find_closing

if TYPE_CHECKING:
    from .registry import FunctionRegistry


BUILTIN_DIRECTIVES = frozenset(
    [
        "if",
        "elseif",
        "else",
        "endif",
        "isset",
        "endisset",
        "empty",
        "endempty",
        "switch",
        "case",
        "default",
        "endswitch",
        "break",
        "continue",
        "foreach",
        "endforeach",
        "forelse",
        "endforelse",
        "for",
        "endfor",
        "while",
        "endwhile",
        "set",
        "include",
        "each",
        "extends",
        "section",
        "endsection",
        "yield",
        "push",
        "endpush",
        "stack",
        "javascript",
        "script",
        "endscript",
    ]
)

# Directives that produce output where they stand. Whitespace around them is
# never trimmed.
OUTPUT_DIRECTIVES = frozenset(["yield", "stack", "include", "each", "javascript"])

_FORMS = {
    "if": "@if(condition)",
    "elseif": "@elseif(condition)",
    "isset": "@isset(expression)",
    "switch": "@switch(expression)",
    "case": "@case(expression)",
    "foreach": "@foreach(collection as item) or @foreach(collection as key => item)",
    "forelse": "@forelse(collection as item) or @forelse(collection as key => item)",
    "for": "@for(name in start count end)",
    "while": "@while(condition)",
    "set": "@set(name = expression)",
    "include": "@include('template') or @include('template' with data)",
    "each": (
        "@each('template', items, 'name') or "
        "@each('template', items, 'name', fallback)"
    ),
    "extends": "@extends('layout') or @extends('layout' with data)",
    "section": "@section('name') or @section('name', content)",
    "yield": "@yield('name') or @yield('name', default)",
    "push": "@push('name') or @push('name', content)",
    "stack": "@stack('name') or @stack('name', default)",
}

_RE_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_RE_NOT = re.compile(r"not\s+")
_RE_FOR = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s+in\s+(.+?)\s+count\s+(.+)", re.S)
_RE_SET = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*=(?!=)\s*(.+)", re.S)

_LOOPS = ("foreach", "forelse", "for", "while")


def is_known_directive(name: str, registry: FunctionRegistry) -> bool:
    if name in BUILTIN_DIRECTIVES or registry.has_directive(name):
        return True
    for prefix in ("", "else", "end"):
        if name.startswith(prefix) and registry.has_condition(name[len(prefix) :]):
            return True
    return False


def is_output_directive(name: str, registry: FunctionRegistry) -> bool:
    if name in OUTPUT_DIRECTIVES:
        return True
    return name not in BUILTIN_DIRECTIVES and registry.has_directive(name)


class _Frame:
    """An open block and the nodes collected for it so far."""

    def __init__(
        self,
        kind: str,
        token: Token | None,
        closer: str | None,
        **attrs: object,
    ):
        self.kind = kind
        self.token = token
        self.closer = closer
        self.attrs = attrs
        self.nodes: list[Node] = []
        # Conditional branches, or switch cases. A None condition is the
        # `@else` / `@default` block.
        self.blocks: list[tuple[Expression | None, list[Node]]] = []

    def start_block(self, condition: Expression | None) -> None:
        self.nodes = []
        self.blocks.append((condition, self.nodes))

    def has_default(self) -> bool:
        return any(condition is None for condition, _ in self.blocks)


def _body(nodes: list[Node]) -> tuple[Node, ...]:
    return tuple(nodes)


class DirectiveCompiler:
    """Translate tokens into render nodes for one compile pass.

    An instance is stateful and must only be used for one template.
    """

    def __init__(
        self,
        registry: FunctionRegistry,
        shapes: Shapes,
        scripts: deque[str],
        *,
        keep_comments: bool = False,
    ):
        self.registry = registry
        self.shapes = shapes
        self.scripts = scripts
        self.keep_comments = keep_comments
        self.resolver = ExpressionResolver(registry, shapes)
        self.pipeline = FilterPipeline(self.resolver, registry)
        self.frames: list[_Frame] = [_Frame("root", None, None)]

    @property
    def frame(self) -> _Frame:
        return self.frames[-1]

    def append(self, node: Node) -> None:
        nodes = self.frame.nodes
        if isinstance(node, str):
            if not node:
                return
            if nodes and isinstance(nodes[-1], str):
                nodes[-1] += node
                return
        nodes.append(node)

    def finish(self) -> tuple[Node, ...]:
        if len(self.frames) > 1:
            frame = self.frame
            opener = frame.token.value if frame.token else frame.kind
            raise DirectiveSyntaxError(
                f"'@{opener}' is never closed, expected '@{frame.closer}'",
                fragment=f"@{opener}",
                token=frame.token,
            )
        return _body(self.frame.nodes)

    # Expressions

    def expression(self, text: str) -> Expression:
        return self.pipeline.compile(text)

    def arguments(self, text: str | None) -> tuple[Expression, ...]:
        if text is None or not text.strip():
            return ()
        return tuple(self.expression(arg) for arg in split_top_level(text, ","))

    def condition(self, text: str) -> Expression:
        """Compile a boolean expression.

        `or`/`||` bind loosest, then `and`/`&&`, then a `not`/`!` prefix,
        then parentheses and a single comparison operator.
        """
        text = text.strip()

        if not text:
            raise InvalidExpression("empty condition", fragment=text)

        for separators, node in (
            (("or", "||"), LogicalOr),
            (("and", "&&"), LogicalAnd),
        ):
            parts = [text]
            for separator in separators:
                parts = [p for part in parts for p in split_top_level(part, separator)]
            if len(parts) > 1:
                return reduce(node, [self.condition(part) for part in parts])

        if text.startswith("!") and not text.startswith("!="):
            return LogicalNot(self.condition(text[1:]))

        match = _RE_NOT.match(text)
        if match:
            return LogicalNot(self.condition(text[match.end() :]))

        if text.startswith("(") and find_closing(text, 0) == len(text) - 1:
            return self.condition(text[1:-1])

        comparison = split_comparison(text)
        if comparison is not None:
            left, op, right = comparison
            if not left or not right:
                raise InvalidExpression(
                    f"comparison {text!r} is missing an operand", fragment=text
                )
            return Comparison(self.expression(left), op, self.expression(right))

        return self.expression(text)

    # Dispatch

    def output(self, token: Token, *, escaped: bool) -> None:
        self.append(Output(self.expression(token.value), escaped))

    def comment(self, token: Token) -> None:
        if self.keep_comments:
            self.append(f"<!--{token.value}-->")

    def directive(self, token: Token) -> None:
        name = token.value

        if name in BUILTIN_DIRECTIVES:
            handler: Callable[[Token], None] = getattr(self, f"compile_{name}")
            handler(token)
        elif self.registry.has_directive(name):
            self.append(CustomDirective(name, self.arguments(token.args)))
        elif self.registry.has_condition(name):
            self.open_conditional(
                token,
                CustomCondition(name, self.arguments(token.args)),
                f"end{name}",
            )
        elif name.startswith("else") and self.registry.has_condition(name[4:]):
            self.continue_conditional(
                token,
                CustomCondition(name[4:], self.arguments(token.args)),
                f"end{name[4:]}",
            )
        elif name.startswith("end") and self.registry.has_condition(name[3:]):
            self.no_arguments(token)
            self.close_conditional(token)
        else:
            raise UnknownDirective(f"unknown directive '@{name}'", fragment=f"@{name}")

    def require(self, token: Token) -> str:
        args = (token.args or "").strip()
        if not args:
            raise DirectiveSyntaxError(
                f"'@{token.value}' expects arguments: {_FORMS[token.value]}",
                fragment=f"@{token.value}",
            )
        return args

    def no_arguments(self, token: Token) -> None:
        if token.args is not None and token.args.strip():
            raise DirectiveSyntaxError(
                f"'@{token.value}' takes no arguments",
                fragment=f"@{token.value}({token.args})",
            )

    def open(self, token: Token, kind: str, closer: str, **attrs: object) -> _Frame:
        frame = _Frame(kind, token, closer, **attrs)
        self.frames.append(frame)
        return frame

    def close(self, token: Token) -> _Frame:
        name = token.value
        frame = self.frame

        if frame.closer != name:
            if frame.closer is None:
                message = f"unexpected '@{name}'"
            else:
                message = f"unexpected '@{name}', expected '@{frame.closer}'"
            raise DirectiveSyntaxError(message, fragment=f"@{name}")

        self.frames.pop()
        return frame

    def expect_frame(self, token: Token, kinds: tuple[str, ...]) -> _Frame:
        frame = self.frame
        if frame.kind not in kinds:
            raise DirectiveSyntaxError(
                f"unexpected '@{token.value}' outside of "
                + " or ".join(f"'@{kind}'" for kind in kinds),
                fragment=f"@{token.value}",
            )
        return frame

    # Conditionals

    def open_conditional(
        self, token: Token, condition: Expression, closer: str
    ) -> None:
        self.open(token, "if", closer).start_block(condition)

    def continue_conditional(
        self, token: Token, condition: Expression | None, closer: str | None = None
    ) -> None:
        frame = self.expect_frame(token, ("if",))

        if closer is not None and frame.closer != closer:
            raise DirectiveSyntaxError(
                f"unexpected '@{token.value}', expected '@{frame.closer}'",
                fragment=f"@{token.value}",
            )

        if frame.has_default():
            raise DirectiveSyntaxError(
                f"unexpected '@{token.value}' after '@else'",
                fragment=f"@{token.value}",
            )

        frame.start_block(condition)

    def close_conditional(self, token: Token) -> None:
        frame = self.close(token)
        branches = tuple(
            Branch(condition, _body(nodes))
            for condition, nodes in frame.blocks
            if condition is not None
        )
        default = next(
            (_body(nodes) for condition, nodes in frame.blocks if condition is None),
            None,
        )
        self.append(IfBlock(branches, default))

    def compile_if(self, token: Token) -> None:
        self.open_conditional(token, self.condition(self.require(token)), "endif")

    def compile_elseif(self, token: Token) -> None:
        self.continue_conditional(
            token, self.condition(self.require(token)), "endif"
        )

    def compile_else(self, token: Token) -> None:
        self.no_arguments(token)
        self.continue_conditional(token, None)

    def compile_endif(self, token: Token) -> None:
        self.no_arguments(token)
        self.close_conditional(token)

    def compile_isset(self, token: Token) -> None:
        self.open_conditional(
            token, IssetTest(self.expression(self.require(token))), "endisset"
        )

    def compile_endisset(self, token: Token) -> None:
        self.no_arguments(token)
        self.close_conditional(token)

    def compile_empty(self, token: Token) -> None:
        if token.args is None or not token.args.strip():
            # The empty branch of `@forelse`.
            frame = self.expect_frame(token, ("forelse",))
            if frame.attrs.get("empty") is not None:
                raise DirectiveSyntaxError(
                    "unexpected second '@empty' in '@forelse'", fragment="@empty"
                )
            frame.attrs["body"] = frame.nodes
            frame.nodes = []
            frame.attrs["empty"] = frame.nodes
            return

        self.open_conditional(
            token, EmptyTest(self.expression(token.args)), "endempty"
        )

    def compile_endempty(self, token: Token) -> None:
        self.no_arguments(token)
        self.close_conditional(token)

    # Switch

    def compile_switch(self, token: Token) -> None:
        subject = self.expression(self.require(token))
        self.open(token, "switch", "endswitch", subject=subject)

    def start_case(self, token: Token, value: Expression | None) -> None:
        frame = self.expect_frame(token, ("switch",))
        if value is None and frame.has_default():
            raise DirectiveSyntaxError(
                "unexpected second '@default' in '@switch'", fragment="@default"
            )
        if not frame.blocks:
            self.check_preamble(frame)
        frame.start_block(value)

    def check_preamble(self, frame: _Frame) -> None:
        for node in frame.nodes:
            if not isinstance(node, str) or node.strip():
                raise DirectiveSyntaxError(
                    "unexpected content between '@switch' and its first '@case'",
                    fragment="@switch",
                    token=frame.token,
                )

    def compile_case(self, token: Token) -> None:
        self.start_case(token, self.expression(self.require(token)))

    def compile_default(self, token: Token) -> None:
        self.no_arguments(token)
        self.start_case(token, None)

    def compile_endswitch(self, token: Token) -> None:
        self.no_arguments(token)
        frame = self.close(token)
        if not frame.blocks:
            self.check_preamble(frame)
        self.append(
            SwitchBlock(
                frame.attrs["subject"],  # type: ignore[arg-type]
                tuple(Case(value, _body(nodes)) for value, nodes in frame.blocks),
            )
        )

    def check_breakable(self, token: Token) -> None:
        for frame in reversed(self.frames):
            if frame.kind in _LOOPS:
                return
            if frame.kind == "switch" and token.value == "break":
                return
            if frame.kind in ("section", "push", "root"):
                break
        raise DirectiveSyntaxError(
            f"'@{token.value}' is only valid inside a loop", fragment=f"@{token.value}"
        )

    def optional_condition(self, token: Token) -> Expression | None:
        if token.args is None or not token.args.strip():
            return None
        return self.condition(token.args)

    def compile_break(self, token: Token) -> None:
        self.check_breakable(token)
        self.append(Break(self.optional_condition(token)))

    def compile_continue(self, token: Token) -> None:
        self.check_breakable(token)
        self.append(Continue(self.optional_condition(token)))

    # Loops

    def loop_arguments(
        self, token: Token
    ) -> tuple[Expression, str | None, str, str | None]:
        args = self.require(token)
        head, *condition = split_top_level(args, "if", 1)
        parts = split_top_level(head, "as", 1)

        if len(parts) != 2 or not all(parts):
            raise DirectiveSyntaxError(
                f"'@{token.value}' expects {_FORMS[token.value]}",
                fragment=args,
            )

        target = self.expression(parts[0])
        names = split_top_level(parts[1], "=>")

        if len(names) == 1:
            key, item = None, names[0]
        elif len(names) == 2:
            key, item = names
        else:
            raise DirectiveSyntaxError(
                f"'@{token.value}' expects {_FORMS[token.value]}", fragment=args
            )

        for name in (key, item):
            if name is not None:
                if not _RE_NAME.fullmatch(name):
                    raise DirectiveSyntaxError(
                        f"invalid loop variable {name!r}", fragment=args
                    )
                self.shapes.declare(name)

        return target, key, item, condition[0] if condition else None

    def compile_foreach(self, token: Token) -> None:
        target, key, item, condition = self.loop_arguments(token)
        self.open(
            token,
            "foreach",
            "endforeach",
            target=target,
            key=key,
            item=item,
            # The `if` shorthand wraps the loop body in a conditional that
            # `@endforeach` closes too.
            condition=self.condition(condition) if condition else None,
        )

    def compile_endforeach(self, token: Token) -> None:
        self.no_arguments(token)
        frame = self.close(token)
        body = _body(frame.nodes)
        condition = frame.attrs["condition"]

        if condition is not None:
            branch = Branch(condition, body)  # type: ignore[arg-type]
            body = (IfBlock((branch,), None),)

        self.append(
            ForeachBlock(
                frame.attrs["target"],  # type: ignore[arg-type]
                frame.attrs["key"],  # type: ignore[arg-type]
                frame.attrs["item"],  # type: ignore[arg-type]
                body,
            )
        )

    def compile_forelse(self, token: Token) -> None:
        target, key, item, condition = self.loop_arguments(token)
        if condition is not None:
            raise DirectiveSyntaxError(
                "'@forelse' does not support an 'if' filter", fragment=token.args
            )
        self.open(
            token,
            "forelse",
            "endforelse",
            target=target,
            key=key,
            item=item,
            body=None,
            empty=None,
        )

    def compile_endforelse(self, token: Token) -> None:
        self.no_arguments(token)
        frame = self.close(token)
        body = frame.attrs["body"]
        empty = frame.attrs["empty"]

        if body is None:
            body, empty = frame.nodes, []

        self.append(
            ForelseBlock(
                frame.attrs["target"],  # type: ignore[arg-type]
                frame.attrs["key"],  # type: ignore[arg-type]
                frame.attrs["item"],  # type: ignore[arg-type]
                _body(body),  # type: ignore[arg-type]
                _body(empty),  # type: ignore[arg-type]
            )
        )

    def compile_for(self, token: Token) -> None:
        match = _RE_FOR.fullmatch(self.require(token))
        if match is None:
            raise DirectiveSyntaxError(
                f"'@for' expects {_FORMS['for']}", fragment=token.args
            )
        name, start, end = match.groups()
        self.shapes.declare(name)
        self.open(
            token,
            "for",
            "endfor",
            name=name,
            start=self.expression(start),
            end=self.expression(end),
        )

    def compile_endfor(self, token: Token) -> None:
        self.no_arguments(token)
        frame = self.close(token)
        self.append(
            ForBlock(
                frame.attrs["name"],  # type: ignore[arg-type]
                frame.attrs["start"],  # type: ignore[arg-type]
                frame.attrs["end"],  # type: ignore[arg-type]
                _body(frame.nodes),
            )
        )

    def compile_while(self, token: Token) -> None:
        self.open(
            token, "while", "endwhile", condition=self.condition(self.require(token))
        )

    def compile_endwhile(self, token: Token) -> None:
        self.no_arguments(token)
        frame = self.close(token)
        self.append(
            WhileBlock(
                frame.attrs["condition"],  # type: ignore[arg-type]
                _body(frame.nodes),
            )
        )

    def compile_set(self, token: Token) -> None:
        match = _RE_SET.fullmatch(self.require(token))
        if match is None:
            raise DirectiveSyntaxError(
                f"'@set' expects {_FORMS['set']}", fragment=token.args
            )
        name, expression = match.groups()
        node = SetVariable(name, self.expression(expression))
        self.shapes.declare(name)
        self.append(node)

    # Includes

    def template_and_data(self, token: Token) -> tuple[Expression, Expression | None]:
        args = self.require(token)
        parts = split_top_level(args, "with", 1)
        if len(parts) == 1:
            parts = split_top_level(args, ",", 1)
        if not all(parts):
            raise DirectiveSyntaxError(
                f"'@{token.value}' expects {_FORMS[token.value]}", fragment=args
            )
        data = self.expression(parts[1]) if len(parts) == 2 else None
        return self.expression(parts[0]), data

    def compile_include(self, token: Token) -> None:
        self.append(Include(*self.template_and_data(token)))

    def compile_each(self, token: Token) -> None:
        args = self.require(token)
        parts = split_top_level(args, ",")

        if len(parts) not in (3, 4) or not all(parts):
            raise DirectiveSyntaxError(
                f"'@each' expects {_FORMS['each']}", fragment=args
            )

        name = parts[2].strip("'\"")
        if not _RE_NAME.fullmatch(name):
            raise DirectiveSyntaxError(f"invalid item name {parts[2]!r}", fragment=args)

        self.append(
            Each(
                self.expression(parts[0]),
                self.expression(parts[1]),
                name,
                self.expression(parts[3]) if len(parts) == 4 else None,
            )
        )

    # Layouts, sections and stacks

    def compile_extends(self, token: Token) -> None:
        self.append(Extends(*self.template_and_data(token)))

    def name_and_content(self, token: Token) -> tuple[Expression, Expression | None]:
        args = self.require(token)
        parts = split_top_level(args, "with", 1)
        if len(parts) == 1:
            parts = split_top_level(args, ",", 1)
        if not all(parts):
            raise DirectiveSyntaxError(
                f"'@{token.value}' expects {_FORMS[token.value]}", fragment=args
            )
        content = self.expression(parts[1]) if len(parts) == 2 else None
        return self.expression(parts[0]), content

    def compile_section(self, token: Token) -> None:
        name, content = self.name_and_content(token)

        if content is not None:
            self.append(Section(name, (), content))
            return

        for frame in self.frames:
            if frame.kind == "section":
                raise SectionStateError(
                    "can't open a section while another section is open",
                    fragment=f"@section({token.args})",
                )

        self.open(token, "section", "endsection", name=name)

    def compile_endsection(self, token: Token) -> None:
        self.no_arguments(token)
        if not any(frame.kind == "section" for frame in self.frames):
            raise SectionStateError(
                "there is no open section to close", fragment="@endsection"
            )
        frame = self.close(token)
        name = frame.attrs["name"]
        self.append(Section(name, _body(frame.nodes), None))  # type: ignore[arg-type]

    def compile_yield(self, token: Token) -> None:
        self.append(Yield(*self.name_and_default(token)))

    def name_and_default(self, token: Token) -> tuple[Expression, Expression | None]:
        parts = split_top_level(self.require(token), ",", 1)
        if not all(parts):
            raise DirectiveSyntaxError(
                f"'@{token.value}' expects {_FORMS[token.value]}", fragment=token.args
            )
        default = self.expression(parts[1]) if len(parts) == 2 else None
        return self.expression(parts[0]), default

    def compile_push(self, token: Token) -> None:
        name, content = self.name_and_content(token)

        if content is not None:
            self.append(Push(name, (), content))
            return

        self.open(token, "push", "endpush", name=name)

    def compile_endpush(self, token: Token) -> None:
        self.no_arguments(token)
        if not any(frame.kind == "push" for frame in self.frames):
            raise SectionStateError(
                "there is no open push to close", fragment="@endpush"
            )
        frame = self.close(token)
        name = frame.attrs["name"]
        self.append(Push(name, _body(frame.nodes), None))  # type: ignore[arg-type]

    def compile_stack(self, token: Token) -> None:
        self.append(Stack(*self.name_and_default(token)))

    def compile_javascript(self, token: Token) -> None:
        self.no_arguments(token)
        if not self.scripts:
            raise DirectiveSyntaxError(
                "'@javascript' has no matching '@script' block", fragment="@javascript"
            )
        self.append(f"<script>\n{self.scripts.popleft()}\n</script>")

    def compile_script(self, token: Token) -> None:
        raise DirectiveSyntaxError(
            "'@script' is never closed, expected '@endscript'", fragment="@script"
        )

    def compile_endscript(self, token: Token) -> None:
        raise DirectiveSyntaxError("unexpected '@endscript'", fragment="@endscript")
