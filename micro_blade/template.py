"""Templates compiled directly from source strings."""

from __future__ import annotations

from typing import Mapping

from .compiler import Compiler
from .expressions import Scope
from .filters import register_builtins
from .nodes import RenderContext
from .registry import FunctionRegistry
from .state import RenderState


class Template:
    """A template compiled from a string, without an engine.

    Variable shapes are taken from _data_ when it is given. Without it, every
    variable is assumed to exist and dotted paths are resolved at render time.
    Templates built this way can't include or extend other templates.
    """

    def __init__(
        self,
        source: str,
        data: Mapping[str, object] | None = None,
        *,
        registry: FunctionRegistry | None = None,
        trim_blocks: bool = True,
        lstrip_blocks: bool = False,
    ):
        if registry is None:
            registry = FunctionRegistry()
            register_builtins(registry)

        self.registry = registry
        compiler = Compiler(
            registry,
            trim_blocks=trim_blocks,
            lstrip_blocks=lstrip_blocks,
        )
        self.compiled = compiler.compile(source, data, permissive=data is None)

    def render(self, data: Mapping[str, object], *, strict: bool = False) -> str:
        context = RenderContext(
            Scope(data),
            RenderState(),
            self.registry,
            strict=strict,
        )
        buffer: list[str] = []
        self.compiled.render(context, buffer)
        return "".join(buffer)


def render(source: str, data: Mapping[str, object]) -> str:
    """Compile and render _source_ with variables from _data_."""
    return Template(source, data).render(data)
