"""Compile template source text into a `CompiledTemplate`."""

from __future__ import annotations

import logging
import re
from typing import Iterable
from typing import Mapping

from . import codec
from .access import Shapes
from .directives import DirectiveCompiler
from .directives import is_known_directive
from .directives import is_output_directive
from .exceptions import TemplateError
from .nodes import Node
from .nodes import RenderContext
from .nodes import render_block
from .registry import FunctionRegistry
from .scanner import TagScanner
from .scanner import Token

logger = logging.getLogger(__name__)

_RE_INDENT = re.compile(r"(?:^|(?<=\n))[ \t]*\Z")


class CompiledTemplate:
    """An immutable tree of render nodes."""

    def __init__(self, nodes: tuple[Node, ...]):
        self.nodes = nodes

    def __eq__(self, other: object) -> bool:
        return isinstance(other, CompiledTemplate) and self.nodes == other.nodes

    def __hash__(self) -> int:
        return hash(self.nodes)

    def __repr__(self) -> str:
        return f"CompiledTemplate({len(self.nodes)} nodes)"

    def render(self, context: RenderContext, buffer: list[str]) -> None:
        render_block(self.nodes, context, buffer)

    def dump(self) -> str:
        return codec.dumps(self.nodes)

    @classmethod
    def load(cls, text: str) -> CompiledTemplate:
        return cls(codec.loads(text))  # type: ignore[arg-type]


def _origin(token: Token) -> str:
    if token.kind == "TOKEN_OUT":
        return f"{{{{ {token.value} }}}}"
    if token.kind == "TOKEN_RAW_OUT":
        return f"{{{{{{ {token.value} }}}}}}"
    if token.kind == "TOKEN_DIRECTIVE":
        return f"@{token.value}"
    return token.value


class Compiler:
    """Turn template source into compiled templates.

    A compiler is reusable and holds no per-template state. Shapes of the
    variables a template refers to come from _data_ passed to `compile()`.
    """

    def __init__(
        self,
        registry: FunctionRegistry,
        *,
        trim_blocks: bool = True,
        lstrip_blocks: bool = False,
        keep_comments: bool = False,
    ):
        self.registry = registry
        self.trim_blocks = trim_blocks
        self.lstrip_blocks = lstrip_blocks
        self.keep_comments = keep_comments
        self.scanner = TagScanner()

    def compile(
        self,
        source: str,
        data: Mapping[str, object] | None = None,
        *,
        name: str | None = None,
        permissive: bool = False,
    ) -> CompiledTemplate:
        try:
            scanned = self.scanner.scan(source)
        except TemplateError as err:
            err.source = source
            err.template_id = name
            raise

        shapes = Shapes(data, permissive=permissive)
        directives = DirectiveCompiler(
            self.registry,
            shapes,
            scanned.scripts,
            keep_comments=self.keep_comments,
        )

        token: Token | None = None

        try:
            tokens = self.detach_unknown(scanned.source, scanned.tokens)
            for token in self.trim(tokens):
                kind = token.kind
                if kind == "TOKEN_TEXT":
                    directives.append(token.value)
                elif kind == "TOKEN_OUT":
                    directives.output(token, escaped=True)
                elif kind == "TOKEN_RAW_OUT":
                    directives.output(token, escaped=False)
                elif kind == "TOKEN_COMMENT":
                    directives.comment(token)
                else:
                    directives.directive(token)

            token = None
            nodes = directives.finish()
        except TemplateError as err:
            if err.token is None:
                err.token = token
            if err.origin is None and token is not None:
                err.origin = _origin(token)
            err.source = scanned.source
            err.template_id = name
            raise

        logger.debug(f"compiled {name or '<string>'} ({len(nodes)} top-level nodes)")
        return CompiledTemplate(nodes)

    def trim(self, tokens: list[Token]) -> Iterable[Token]:
        """Remove whitespace around directives that produce no output."""
        if not self.trim_blocks and not self.lstrip_blocks:
            return tokens

        trimmed = list(tokens)

        for i, token in enumerate(trimmed):
            if not self.is_block_token(token):
                continue

            # Line starts are judged on the untrimmed text.
            if self.lstrip_blocks and i > 0 and tokens[i - 1].kind == "TOKEN_TEXT":
                match = _RE_INDENT.search(tokens[i - 1].value)
                if match and (match.start() > 0 or i == 1):
                    previous = trimmed[i - 1]
                    indent = match.end() - match.start()
                    trimmed[i - 1] = previous._replace(
                        value=previous.value[: len(previous.value) - indent]
                    )

            if self.trim_blocks and i + 1 < len(trimmed):
                following = trimmed[i + 1]
                if following.kind == "TOKEN_TEXT" and following.value.startswith("\n"):
                    trimmed[i + 1] = following._replace(
                        value=following.value[1:], start=following.start + 1
                    )

        return trimmed

    def is_block_token(self, token: Token) -> bool:
        if token.kind == "TOKEN_COMMENT":
            return True
        return token.kind == "TOKEN_DIRECTIVE" and not is_output_directive(
            token.value, self.registry
        )

    def detach_unknown(self, source: str, tokens: list[Token]) -> list[Token]:
        """Turn unknown directives glued to a preceding word into literal text,
        so `user@example.com` is not mistaken for `@example`."""
        result: list[Token] = []

        for i, token in enumerate(tokens):
            if (
                token.kind == "TOKEN_DIRECTIVE"
                and token.start > 0
                and _is_word(source[token.start - 1])
                and not is_known_directive(token.value, self.registry)
            ):
                end = tokens[i + 1].start if i + 1 < len(tokens) else len(source)
                token = Token("TOKEN_TEXT", source[token.start : end], token.start)
            result.append(token)

        return result


def _is_word(ch: str) -> bool:
    return ch.isalnum() or ch == "_"
