"""Wrap resolved expressions in filter applications."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from typing import Iterable

from .exceptions import InvalidExpression
from .exceptions import UnknownFilter
from .expressions import Expression
from .expressions import FilterApplication
from .resolver import ExpressionResolver
from .resolver import split_top_level

if TYPE_CHECKING:
    from .registry import FunctionRegistry

_RE_FILTER = re.compile(r"([A-Za-z_][A-Za-z0-9_]*)\s*(?:\((.*)\))?", re.S)


class FilterPipeline:
    """Compile `base|filter|filter(args)` into nested filter applications.

    Filters apply left to right, so `x|f|g` evaluates as `g(f(x))`.
    """

    def __init__(self, resolver: ExpressionResolver, registry: FunctionRegistry):
        self.resolver = resolver
        self.registry = registry

    def compile(self, text: str) -> Expression:
        base, *chain = split_top_level(text, "|")
        return self.apply_filters(
            self.resolver.resolve(base),
            [self.parse_filter(link) for link in chain],
        )

    def parse_filter(self, text: str) -> tuple[str, str | None]:
        match = _RE_FILTER.fullmatch(text.strip())
        if match is None:
            raise InvalidExpression(f"invalid filter {text!r}", fragment=text)
        return match[1], match[2]

    def apply_filters(
        self,
        base: Expression,
        chain: Iterable[tuple[str, str | None]],
    ) -> Expression:
        expression = base
        for name, args in chain:
            if not self.registry.has_filter(name):
                raise UnknownFilter(f"unknown filter {name!r}", fragment=name)
            expression = FilterApplication(
                expression,
                name,
                tuple(self.resolver.resolve_arguments(args or "")),
            )
        return expression
