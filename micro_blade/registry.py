"""Named filters, functions, directives and conditions available to templates."""

from __future__ import annotations

import re
from collections import ChainMap
from typing import Callable

from .directives import BUILTIN_DIRECTIVES
from .exceptions import RegistrationConflict
from .exceptions import UnknownDirective
from .exceptions import UnknownFilter
from .exceptions import UnknownFunction

_RE_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_RE_DIRECTIVE_NAME = re.compile(r"[A-Za-z][A-Za-z0-9_]*")


class FunctionRegistry:
    """A name to callable mapping for each kind of template extension.

    Filters and functions are separate namespaces, so one name can be both
    with unrelated behaviour. Registration is append-only: registering a
    name twice raises `RegistrationConflict`. A scoped registry from `scope()`
    shares everything with its parent except directives, which it may shadow.
    """

    def __init__(self, parent: FunctionRegistry | None = None):
        if parent is None:
            self.filters: dict[str, Callable[..., object]] = {}
            self.functions: dict[str, Callable[..., object]] = {}
            self.conditions: dict[str, Callable[..., object]] = {}
            self.directives: ChainMap[str, Callable[..., object]] = ChainMap()
        else:
            self.filters = parent.filters
            self.functions = parent.functions
            self.conditions = parent.conditions
            self.directives = parent.directives.new_child()

    def scope(self) -> FunctionRegistry:
        """Return a registry that may shadow this one's directives.

        Used by `Engine.scope()`.
        """
        return FunctionRegistry(self)

    def _register(
        self,
        namespace: dict[str, Callable[..., object]],
        kind: str,
        name: str,
        fn: Callable[..., object],
    ) -> None:
        if not _RE_NAME.fullmatch(name):
            raise ValueError(f"invalid {kind} name {name!r}")
        if not callable(fn):
            raise TypeError(f"{kind} {name!r} must be callable")
        if name in namespace:
            raise RegistrationConflict(
                f"{kind} {name!r} is already registered", fragment=name
            )
        namespace[name] = fn

    def register_filter(self, name: str, fn: Callable[..., object]) -> None:
        self._register(self.filters, "filter", name, fn)

    def register_function(self, name: str, fn: Callable[..., object]) -> None:
        self._register(self.functions, "function", name, fn)

    def register_directive(self, name: str, fn: Callable[..., object]) -> None:
        if not _RE_DIRECTIVE_NAME.fullmatch(name):
            raise ValueError(f"invalid directive name {name!r}")
        if name.lower() in BUILTIN_DIRECTIVES:
            raise RegistrationConflict(
                f"'@{name}' is a built-in directive", fragment=name
            )
        if not callable(fn):
            raise TypeError(f"directive {name!r} must be callable")
        if name in self.directives.maps[0]:
            raise RegistrationConflict(
                f"directive '@{name}' is already registered", fragment=name
            )
        self.directives[name] = fn

    def register_condition(self, name: str, fn: Callable[..., object]) -> None:
        """Register _fn_ as `@name(...)`, `@else<name>(...)` and `@end<name>`."""
        for directive in (name, f"else{name}", f"end{name}"):
            if directive.lower() in BUILTIN_DIRECTIVES:
                raise RegistrationConflict(
                    f"'@{directive}' is a built-in directive", fragment=name
                )
        self._register(self.conditions, "condition", name, fn)

    def has_filter(self, name: str) -> bool:
        return name in self.filters

    def has_function(self, name: str) -> bool:
        return name in self.functions

    def has_directive(self, name: str) -> bool:
        return name in self.directives

    def has_condition(self, name: str) -> bool:
        return name in self.conditions

    def resolve_filter(self, name: str, *args: object) -> object:
        try:
            fn = self.filters[name]
        except KeyError:
            raise UnknownFilter(f"unknown filter {name!r}", fragment=name) from None
        return fn(*args)

    def resolve_function(self, name: str, *args: object) -> object:
        try:
            fn = self.functions[name]
        except KeyError:
            raise UnknownFunction(
                f"unknown function {name!r}", fragment=name
            ) from None
        return fn(*args)

    def call_directive(self, name: str, *args: object) -> object:
        try:
            fn = self.directives[name]
        except KeyError:
            raise UnknownDirective(
                f"unknown directive '@{name}'", fragment=name
            ) from None
        return fn(*args)

    def check_condition(self, name: str, *args: object) -> bool:
        try:
            fn = self.conditions[name]
        except KeyError:
            raise UnknownDirective(
                f"unknown condition '@{name}'", fragment=name
            ) from None
        return bool(fn(*args))
