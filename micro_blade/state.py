"""Layout, section and stack state for a single render."""

from __future__ import annotations

from typing import Mapping

from .exceptions import SectionStateError


class RenderState:
    """Mutable state shared by every template executed during one render.

    Output written inside a section or push region goes to a sink that the
    state hands out when the region opens. Closing the region joins that sink
    into the section or stack. One instance must never be shared between
    concurrent renders.
    """

    def __init__(self) -> None:
        self.sections: dict[str, str] = {}
        self.stacks: dict[str, list[str]] = {}
        self.open_section: str | None = None
        self.open_stacks: list[str] = []
        self.layout: tuple[str, Mapping[str, object]] | None = None
        self._section_sink: list[str] = []
        self._stack_sinks: list[list[str]] = []

    def begin_section(self, name: str) -> list[str]:
        if self.open_section is not None:
            raise SectionStateError(
                f"can't open section {name!r} while section "
                f"{self.open_section!r} is still open",
                fragment=name,
            )
        self.open_section = name
        self._section_sink = []
        return self._section_sink

    def end_section(self) -> None:
        if self.open_section is None:
            raise SectionStateError("there is no open section to close")
        self.sections[self.open_section] = "".join(self._section_sink)
        self.open_section = None
        self._section_sink = []

    def put_section(self, name: str, content: str) -> None:
        self.begin_section(name).append(content)
        self.end_section()

    def section(self, name: str, default: str | None = None) -> str | None:
        return self.sections.get(name, default)

    def begin_push(self, name: str) -> list[str]:
        sink: list[str] = []
        self.open_stacks.append(name)
        self._stack_sinks.append(sink)
        return sink

    def end_push(self) -> None:
        if not self.open_stacks:
            raise SectionStateError("there is no open push to close")
        name = self.open_stacks.pop()
        sink = self._stack_sinks.pop()
        self.stacks.setdefault(name, []).append("".join(sink))

    def push(self, name: str, content: str) -> None:
        self.begin_push(name).append(content)
        self.end_push()

    def stack(self, name: str, default: str = "") -> str:
        if name not in self.stacks:
            return default
        return "".join(self.stacks[name])

    def extend(self, name: str, data: Mapping[str, object] | None = None) -> None:
        self.layout = (name, data or {})

    def take_layout(self) -> tuple[str, Mapping[str, object]] | None:
        layout = self.layout
        self.layout = None
        return layout

    def flush(self) -> None:
        """Discard all sections, stacks and any declared layout.

        `Engine.render()` uses a fresh state for each call. Call this to reuse
        one state across renders of unrelated templates.
        """
        self.sections.clear()
        self.stacks.clear()
        self.open_section = None
        self.open_stacks.clear()
        self._stack_sinks.clear()
        self.layout = None
