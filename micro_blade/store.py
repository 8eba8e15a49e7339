"""Where template source comes from and compiled templates go."""

from __future__ import annotations

import logging
import os
import re
import tempfile
from itertools import count
from pathlib import Path
from typing import Protocol

from .exceptions import SourceNotFound
from .exceptions import TemplateNotFound

logger = logging.getLogger(__name__)

_RE_IDENTIFIER = re.compile(r"[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*")


def validate_identifier(template_id: str) -> str:
    if not _RE_IDENTIFIER.fullmatch(template_id):
        raise TemplateNotFound(
            f"invalid template identifier {template_id!r}", fragment=template_id
        )
    return template_id


def identifier_to_path(template_id: str, extension: str) -> Path:
    """Map a dotted identifier to a relative path.

    `blog.index` becomes `blog/index.tpl` for the extension `.tpl`.
    """
    parts = validate_identifier(template_id).split(".")
    return Path(*parts[:-1], parts[-1] + extension)


class SourceStore(Protocol):
    """Template source text and compiled templates, keyed by identifier."""

    def exists(self, template_id: str) -> bool:
        """Return True if _template_id_ has source text."""
        ...

    def read(self, template_id: str) -> str:
        """Return the source text for _template_id_.

        Raises `SourceNotFound` if there is none.
        """
        ...

    def is_stale_or_missing(self, template_id: str) -> bool:
        """Return True if the compiled form is absent or older than its source."""
        ...

    def write_compiled(self, template_id: str, text: str) -> None:
        """Replace the compiled form of _template_id_ with _text_."""
        ...

    def read_compiled(self, template_id: str) -> str:
        """Return the compiled form of _template_id_."""
        ...


class FileSourceStore:
    """Sources under _template_path_, compiled JSON under _compiled_path_."""

    def __init__(
        self,
        template_path: str | Path,
        compiled_path: str | Path,
        extension: str = ".tpl",
    ):
        self.template_path = Path(template_path)
        self.compiled_path = Path(compiled_path)
        self.extension = extension
        self.compiled_path.mkdir(parents=True, exist_ok=True)

    def source_path(self, template_id: str) -> Path:
        return self.template_path / identifier_to_path(template_id, self.extension)

    def compiled_file(self, template_id: str) -> Path:
        return self.compiled_path / f"{validate_identifier(template_id)}.json"

    def exists(self, template_id: str) -> bool:
        return self.source_path(template_id).is_file()

    def read(self, template_id: str) -> str:
        path = self.source_path(template_id)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise SourceNotFound(
                f"no template source at {path}", fragment=template_id
            ) from None

    def is_stale_or_missing(self, template_id: str) -> bool:
        compiled = self.compiled_file(template_id)
        if not compiled.is_file():
            logger.debug(f"{template_id} has not been compiled")
            return True

        try:
            source_mtime = self.source_path(template_id).stat().st_mtime
        except FileNotFoundError:
            raise SourceNotFound(
                f"no template source for {template_id!r}", fragment=template_id
            ) from None

        stale = compiled.stat().st_mtime < source_mtime
        if stale:
            logger.debug(f"{template_id} is stale")
        return stale

    def write_compiled(self, template_id: str, text: str) -> None:
        target = self.compiled_file(template_id)
        # The target is only ever replaced whole.
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=self.compiled_path,
            prefix=f".{template_id}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            f.write(text)
            temp_path = f.name

        try:
            os.replace(temp_path, target)
        except OSError:
            os.unlink(temp_path)
            raise

        logger.debug(f"wrote compiled template {target}")

    def read_compiled(self, template_id: str) -> str:
        return self.compiled_file(template_id).read_text(encoding="utf-8")


class MemorySourceStore:
    """An in-memory store, mostly for tests.

    Modification times come from a counter that ticks on every write, so
    staleness doesn't depend on clock resolution.
    """

    def __init__(self, sources: dict[str, str] | None = None):
        self._clock = count(1)
        self._sources: dict[str, tuple[str, int]] = {}
        self._compiled: dict[str, tuple[str, int]] = {}
        for template_id, text in (sources or {}).items():
            self.set_source(template_id, text)

    def set_source(self, template_id: str, text: str) -> None:
        self._sources[validate_identifier(template_id)] = (text, next(self._clock))

    def exists(self, template_id: str) -> bool:
        return template_id in self._sources

    def read(self, template_id: str) -> str:
        try:
            return self._sources[template_id][0]
        except KeyError:
            raise SourceNotFound(
                f"no template source for {template_id!r}", fragment=template_id
            ) from None

    def is_stale_or_missing(self, template_id: str) -> bool:
        if template_id not in self._compiled:
            return True
        if template_id not in self._sources:
            raise SourceNotFound(
                f"no template source for {template_id!r}", fragment=template_id
            )
        return self._compiled[template_id][1] < self._sources[template_id][1]

    def write_compiled(self, template_id: str, text: str) -> None:
        self._compiled[template_id] = (text, next(self._clock))

    def read_compiled(self, template_id: str) -> str:
        return self._compiled[template_id][0]
