"""Exceptions raised while compiling and rendering templates."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .scanner import Token


class TemplateError(Exception):
    """Base class for all template compilation and rendering errors.

    Every error carries the offending raw text (`fragment`) and the tag or
    directive it came from (`origin`). The compiler fills in `token`, `source`
    and `template_id` on the way out so `str()` can point at the failing line.
    """

    def __init__(
        self,
        *args: object,
        fragment: str | None = None,
        origin: str | None = None,
        token: Token | None = None,
    ):
        super().__init__(*args)
        self.fragment = fragment
        self.origin = origin
        self.token = token
        self.source: str | None = None
        self.template_id: str | None = None

    @property
    def message(self) -> str:
        message = str(self.args[0]) if self.args else self.__class__.__name__
        if self.origin and self.origin not in message:
            message = f"{message} (in {self.origin})"
        return message

    def __str__(self) -> str:
        if not self.token or self.token.start < 0 or not self.source:
            if self.template_id:
                return f"{self.message} [{self.template_id}]"
            return self.message

        value = self.token.value
        context = self.error_context(self.source, self.token.start)

        if not context:
            return self.message

        line, col, current = context

        name = self.template_id or "<string>"
        position = f"{name}:{line}:{col}"
        pad = " " * len(str(line))
        pointer = (" " * col) + ("^" * max(len(value), 1))

        return os.linesep.join(
            [
                self.message,
                f"{pad} -> {position}",
                f"{pad} |",
                f"{line} | {current}",
                f"{pad} | {pointer} {self.message}",
            ]
        )

    def error_context(self, text: str, index: int) -> tuple[int, int, str] | None:
        """Return the line number, column number and current line of text."""
        lines = text.splitlines(keepends=True)
        cumulative_length = 0
        target_line_index = -1

        for i, line in enumerate(lines):
            cumulative_length += len(line)
            if index < cumulative_length:
                target_line_index = i
                break

        if target_line_index == -1:
            return None

        line_number = target_line_index + 1  # 1-based
        column_number = index - (cumulative_length - len(lines[target_line_index]))
        current_line = lines[target_line_index].rstrip()
        return (line_number, column_number, current_line)


class TemplateSyntaxError(TemplateError):
    """Malformed tag markup found by the scanner."""


class InvalidExpression(TemplateError):
    """An expression is empty or cannot be parsed."""


class UndefinedVariable(TemplateError):
    """A path root is not a declared variable."""


class InaccessibleMember(TemplateError):
    """A path segment has no readable member, method or getter."""


class UnknownFilter(TemplateError):
    """A filter name is not registered."""


class UnknownFunction(TemplateError):
    """A function name is not registered."""


class UnknownDirective(TemplateError):
    """A directive is neither built in nor registered."""


class DirectiveSyntaxError(TemplateError):
    """A directive's arguments are missing or malformed, or blocks are mismatched."""


class TemplateNotFound(TemplateError):
    """A template identifier has no backing source."""


class SourceNotFound(TemplateError):
    """A source store has no text for an identifier."""


class SectionStateError(TemplateError):
    """A section or push region was opened or closed out of order."""


class RegistrationConflict(TemplateError):
    """A filter, function, directive or condition name is already registered."""
