"""Split raw template text into literal text, output tags and directives."""

from __future__ import annotations

import re
from collections import deque
from typing import Callable
from typing import NamedTuple
from typing import Optional
from typing import TypeAlias

from .exceptions import TemplateSyntaxError


class Token(NamedTuple):
    kind: str
    value: str
    start: int
    args: str | None = None


class ScannedTemplate(NamedTuple):
    source: str
    tokens: list[Token]
    scripts: deque[str]


_StateFn: TypeAlias = Callable[[], Optional["_StateFn"]]

COMMENT_START = "\x02"
COMMENT_END = "\x03"

_RE_COMMENT = re.compile(r"\{\*(.*?)\*\}", re.S)
_RE_NOT_NEWLINE = re.compile(r"[^\n]")
_RE_SCRIPT = re.compile(r"@script(?!\w)(.*?)@endscript(?!\w)", re.S)
_RE_MARKUP_START = re.compile(
    r"(?P<escaped>@\{\{)"
    r"|(?P<raw>\{\{\{)"
    r"|(?P<output>\{\{)"
    r"|(?P<comment>\x02)"
    r"|@(?P<directive>[A-Za-z][A-Za-z0-9_]*)"
)
_RE_OUTPUT_BODY = re.compile(r"([^\n}]*)(\}*)")
_RE_ARGS_START = re.compile(r"[ \t]*\(")

_BRACKETS = {"(": ")", "[": "]", "{": "}"}


def find_closing(text: str, pos: int, *, stop_at_newline: bool = False) -> int:
    """Return the index of the bracket that closes the one at `pos`, or -1.

    Brackets inside quoted strings are ignored.
    """
    expected: list[str] = []
    quote = ""
    i = pos

    while i < len(text):
        ch = text[i]

        if ch == "\n" and stop_at_newline:
            return -1

        if quote:
            if ch == "\\":
                i += 1
            elif ch == quote:
                quote = ""
        elif ch in ("'", '"'):
            quote = ch
        elif ch in _BRACKETS:
            expected.append(_BRACKETS[ch])
        elif ch in (")", "]", "}"):
            if not expected or expected.pop() != ch:
                return -1
            if not expected:
                return i

        i += 1

    return -1


class TagScanner:
    """Tokenize template source.

    Comments and `@script` blocks are taken out of the text before any tag
    matching happens, so nothing inside them is ever compiled. Comment bodies
    are replaced by an inert marker of the same length, keeping error
    positions accurate. Each script body is replaced by a bare `@javascript`
    directive that refers to the next stored body, in order.
    """

    def scan(self, source: str) -> ScannedTemplate:
        text = source.replace("\r\n", "\n").replace("\r", "\n")
        text = text.replace(COMMENT_START, "\ufffd").replace(COMMENT_END, "\ufffd")

        comments: list[str] = []

        def hide_comment(match: re.Match[str]) -> str:
            comments.append(match[1])
            padding = _RE_NOT_NEWLINE.sub(" ", match[0])[2:]
            return COMMENT_START + padding + COMMENT_END

        text = _RE_COMMENT.sub(hide_comment, text)

        scripts: deque[str] = deque()

        def hide_script(match: re.Match[str]) -> str:
            scripts.append(match[1].strip("\n"))
            return "@javascript"

        text = _RE_SCRIPT.sub(hide_script, text)

        return ScannedTemplate(text, _Lexer(text, comments).tokens, scripts)


class _Lexer:
    def __init__(self, source: str, comments: list[str]):
        self.source = source
        self.comments = deque(comments)
        self.tokens: list[Token] = []
        self.start = 0
        self.pos = 0

        state: _StateFn | None = self.lex_text
        while state is not None:
            state = state()

    def emit(self, kind: str, value: str, args: str | None = None) -> None:
        self.tokens.append(Token(kind, value, self.start, args))
        self.start = self.pos

    def error(self, message: str, value: str) -> TemplateSyntaxError:
        return TemplateSyntaxError(
            message,
            fragment=value,
            token=Token("TOKEN_ERROR", value, self.start),
        )

    def lex_text(self) -> _StateFn | None:
        match = _RE_MARKUP_START.search(self.source, self.pos)

        if match is None:
            self.pos = len(self.source)
            if self.pos > self.start:
                self.emit("TOKEN_TEXT", self.source[self.start : self.pos])
            return None

        if match.start() > self.start:
            self.pos = match.start()
            self.emit("TOKEN_TEXT", self.source[self.start : self.pos])

        self.pos = match.end()
        kind = match.lastgroup

        if kind == "escaped":
            return self.lex_escaped
        if kind == "raw":
            return self.lex_raw_output
        if kind == "output":
            return self.lex_output
        if kind == "comment":
            return self.lex_comment
        return self.lex_directive

    def scan_output_body(self, opening: str) -> str:
        expected = "}" * len(opening)
        match = _RE_OUTPUT_BODY.match(self.source, self.pos)
        if match is None:
            raise self.error(
                f"unterminated output tag, expected {expected!r}",
                self.source[self.start :],
            )

        body, closing = match.groups()

        if not closing:
            raise self.error(
                f"unterminated output tag, expected {expected!r}",
                self.source[self.start : match.end()],
            )

        if closing != expected:
            raise self.error(
                f"mismatched braces, {opening!r} must be closed by {expected!r}",
                self.source[self.start : match.end()],
            )

        self.pos = match.end()
        return body.strip()

    def lex_escaped(self) -> _StateFn | None:
        # `@{{ x }}` is for another templating layer (client-side) and is
        # re-emitted as literal text.
        opening = "{{"
        if self.source.startswith("{", self.pos):
            self.pos += 1
            opening = "{{{"

        body = self.scan_output_body(opening)
        closing = "}" * len(opening)
        self.emit("TOKEN_TEXT", f"{opening} {body} {closing}")
        return self.lex_text

    def lex_output(self) -> _StateFn | None:
        self.emit("TOKEN_OUT", self.scan_output_body("{{"))
        return self.lex_text

    def lex_raw_output(self) -> _StateFn | None:
        self.emit("TOKEN_RAW_OUT", self.scan_output_body("{{{"))
        return self.lex_text

    def lex_comment(self) -> _StateFn | None:
        self.pos = self.source.index(COMMENT_END, self.pos) + 1
        self.emit("TOKEN_COMMENT", self.comments.popleft())
        return self.lex_text

    def lex_directive(self) -> _StateFn | None:
        name = self.source[self.start + 1 : self.pos]
        match = _RE_ARGS_START.match(self.source, self.pos)

        if match is None:
            self.emit("TOKEN_DIRECTIVE", name)
            return self.lex_text

        end = find_closing(self.source, match.end() - 1, stop_at_newline=True)

        if end < 0:
            line_end = self.source.find("\n", self.pos)
            raise self.error(
                f"unterminated arguments for directive '@{name}'",
                self.source[self.start : line_end if line_end >= 0 else None],
            )

        self.pos = end + 1
        self.emit("TOKEN_DIRECTIVE", name, self.source[match.end() : end])
        return self.lex_text
