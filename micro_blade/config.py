"""Engine configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import field_validator


class EngineConfig(BaseModel):
    """Settings for an `Engine`.

    Attributes:
        template_path: Directory holding template source files.
        compiled_path: Directory compiled templates are written to.
        extension: Suffix appended to a template identifier to find its source.
        trim_blocks: Remove the first newline after a directive that produces
            no output.
        lstrip_blocks: Remove spaces and tabs before such a directive when it
            starts a line.
        keep_comments: Output `{* ... *}` comments as HTML comments.
        strict_variables: Raise `UndefinedVariable` for undefined variables
            instead of rendering them as empty text.
        strict_yield: Raise `SectionStateError` when `@yield` names a section
            that was never defined and no default is given.
        yield_fallback: Text output by `@yield` for undefined sections.
        max_layout_depth: The maximum number of nested `@extends` layouts.
    """

    model_config = ConfigDict(frozen=True)

    template_path: Path
    compiled_path: Path
    extension: str = ".tpl"
    trim_blocks: bool = True
    lstrip_blocks: bool = False
    keep_comments: bool = False
    strict_variables: bool = False
    strict_yield: bool = False
    yield_fallback: str = ""
    max_layout_depth: int = Field(default=16, ge=1)

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        if not v.startswith(".") or len(v) < 2:
            raise ValueError(
                f"Template extension must start with a dot, got {v!r}. "
                f"Suggestion: Use something like '.tpl' or '.html'."
            )
        return v
