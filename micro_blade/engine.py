"""Render templates by identifier, with layouts, caching and extensions."""

from __future__ import annotations

import logging
import threading
from typing import Callable
from typing import Mapping

from .codec import CodecError
from .compiler import CompiledTemplate
from .compiler import Compiler
from .config import EngineConfig
from .exceptions import TemplateError
from .exceptions import TemplateNotFound
from .expressions import Scope
from .extensions import Extension
from .filters import register_builtins
from .nodes import RenderContext
from .registry import FunctionRegistry
from .state import RenderState
from .store import FileSourceStore
from .store import SourceStore

logger = logging.getLogger(__name__)


class Engine:
    """Compile, cache and render templates.

    Compiled templates are written to the engine's source store and reused
    until their source changes. Shapes of the variables a template refers to
    are taken from the data of the render that compiles it.

    An engine is safe to share between threads. Each call to `render()` gets
    its own `RenderState`.
    """

    def __init__(
        self,
        config: EngineConfig,
        *,
        store: SourceStore | None = None,
        registry: FunctionRegistry | None = None,
    ):
        self.config = config

        if store is None:
            store = FileSourceStore(
                config.template_path,
                config.compiled_path,
                config.extension,
            )

        if registry is None:
            registry = FunctionRegistry()
            register_builtins(registry)

        self.store = store
        self.registry = registry
        self.compiler = Compiler(
            registry,
            trim_blocks=config.trim_blocks,
            lstrip_blocks=config.lstrip_blocks,
            keep_comments=config.keep_comments,
        )
        self.globals: dict[str, object] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._locks_lock = threading.Lock()

    @classmethod
    def create(
        cls,
        *,
        store: SourceStore | None = None,
        registry: FunctionRegistry | None = None,
        **options: object,
    ) -> Engine:
        """Build an engine from keyword configuration options."""
        config = EngineConfig(**options)  # type: ignore[arg-type]
        return cls(config, store=store, registry=registry)

    def scope(self) -> Engine:
        """Return an engine whose directives may shadow this engine's.

        The scoped engine shares this engine's store, shared data, filters,
        functions and conditions. Custom directives are looked up when a
        template is rendered, so a cached template renders with whichever
        engine's directives it is rendered by.
        """
        scoped = Engine(self.config, store=self.store, registry=self.registry.scope())
        scoped.globals = self.globals
        scoped._locks = self._locks
        scoped._locks_lock = self._locks_lock
        return scoped

    def share(self, name: str | Mapping[str, object], value: object = None) -> None:
        """Make data available to every template rendered by this engine."""
        if isinstance(name, Mapping):
            self.globals.update(name)
        else:
            self.globals[name] = value

    def add_filter(self, name: str, fn: Callable[..., object]) -> None:
        self.registry.register_filter(name, fn)

    def add_function(self, name: str, fn: Callable[..., object]) -> None:
        self.registry.register_function(name, fn)

    def directive(self, name: str, fn: Callable[..., object]) -> None:
        self.registry.register_directive(name, fn)

    def add_condition(self, name: str, fn: Callable[..., object]) -> None:
        self.registry.register_condition(name, fn)

    def add_extension(self, extension: Extension) -> None:
        for name, fn in extension.filters().items():
            self.add_filter(name, fn)
        for name, fn in extension.functions().items():
            self.add_function(name, fn)
        for name, fn in extension.directives().items():
            self.directive(name, fn)
        for name, fn in extension.conditions().items():
            self.add_condition(name, fn)
        self.share(extension.shared())
        logger.debug(f"added extension {type(extension).__name__}")

    def _lock(self, template_id: str) -> threading.Lock:
        with self._locks_lock:
            return self._locks.setdefault(template_id, threading.Lock())

    def _check_exists(self, template_id: str) -> None:
        if not self.store.exists(template_id):
            raise TemplateNotFound(
                f"template {template_id!r} does not exist", fragment=template_id
            )

    def _compile(
        self, template_id: str, data: Mapping[str, object]
    ) -> CompiledTemplate:
        source = self.store.read(template_id)
        compiled = self.compiler.compile(source, data, name=template_id)
        self.store.write_compiled(template_id, compiled.dump())
        return compiled

    def compile(
        self,
        template_id: str,
        data: Mapping[str, object] | None = None,
    ) -> CompiledTemplate:
        """Compile _template_id_ now, replacing any compiled form in the store."""
        self._check_exists(template_id)
        with self._lock(template_id):
            return self._compile(template_id, Scope(data or {}, self.globals))

    def load(self, template_id: str, scope: Scope) -> CompiledTemplate:
        """Return the compiled form of _template_id_, compiling it if needed."""
        self._check_exists(template_id)

        with self._lock(template_id):
            if self.store.is_stale_or_missing(template_id):
                logger.debug(f"compiling {template_id}")
                return self._compile(template_id, scope)

            try:
                compiled = CompiledTemplate.load(self.store.read_compiled(template_id))
            except CodecError as err:
                logger.warning(
                    f"recompiling {template_id}, compiled form is unusable: {err}"
                )
                return self._compile(template_id, scope)

        logger.debug(f"using compiled {template_id}")
        return compiled

    def render(
        self,
        template_id: str,
        data: Mapping[str, object] | None = None,
    ) -> str:
        """Render _template_id_ with _data_ and return the output.

        If the template extends a layout, the layout is rendered in turn with
        the same render state, and its output is returned instead.
        """
        state = RenderState()
        data = dict(data or {})
        current = template_id

        for _ in range(self.config.max_layout_depth + 1):
            scope = Scope(data, self.globals)
            context = RenderContext(
                scope,
                state,
                self.registry,
                loader=self,
                strict=self.config.strict_variables,
                strict_yield=self.config.strict_yield,
                yield_fallback=self.config.yield_fallback,
            )

            buffer: list[str] = []
            self.load(current, scope).render(context, buffer)

            layout = state.take_layout()
            if layout is None:
                return "".join(buffer)

            current, layout_data = layout
            data = {**data, **layout_data}
            logger.debug(f"{template_id} extends {current}")

        raise TemplateError(
            f"layouts of {template_id!r} are nested more than "
            f"{self.config.max_layout_depth} deep",
            fragment=current,
            origin="@extends",
        )
