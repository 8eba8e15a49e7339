"""A Blade-like template compiler and renderer."""

from .compiler import CompiledTemplate
from .compiler import Compiler
from .config import EngineConfig
from .engine import Engine
from .exceptions import DirectiveSyntaxError
from .exceptions import InaccessibleMember
from .exceptions import InvalidExpression
from .exceptions import RegistrationConflict
from .exceptions import SectionStateError
from .exceptions import SourceNotFound
from .exceptions import TemplateError
from .exceptions import TemplateNotFound
from .exceptions import TemplateSyntaxError
from .exceptions import UndefinedVariable
from .exceptions import UnknownDirective
from .exceptions import UnknownFilter
from .exceptions import UnknownFunction
from .extensions import ArrayExtension
from .extensions import DateExtension
from .extensions import Extension
from .extensions import TextExtension
from .registry import FunctionRegistry
from .state import RenderState
from .store import FileSourceStore
from .store import MemorySourceStore
from .store import SourceStore
from .template import Template
from .template import render

__all__ = [
    "ArrayExtension",
    "CompiledTemplate",
    "Compiler",
    "DateExtension",
    "DirectiveSyntaxError",
    "Engine",
    "EngineConfig",
    "Extension",
    "FileSourceStore",
    "FunctionRegistry",
    "InaccessibleMember",
    "InvalidExpression",
    "MemorySourceStore",
    "RegistrationConflict",
    "RenderState",
    "SectionStateError",
    "SourceNotFound",
    "SourceStore",
    "Template",
    "TemplateError",
    "TemplateNotFound",
    "TemplateSyntaxError",
    "TextExtension",
    "UndefinedVariable",
    "UnknownDirective",
    "UnknownFilter",
    "UnknownFunction",
    "render",
]
