"""Read named fields from host data.

Each data shape gets a `FieldReadable` adapter. The object adapter owns the
member, bare method, getter fallback chain, so the compiler (which classifies
segments against sample data) and the renderer (which reads segments whose
shape was unknown at compile time) agree on what a name means.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping
from typing import Protocol
from typing import Sequence


class _Missing:
    def __str__(self) -> str:
        return ""

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class _Hint:
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


UNKNOWN = _Hint("UNKNOWN")
UNDECLARED = _Hint("UNDECLARED")


class Shape(Enum):
    MAPPING = "mapping"
    SEQUENCE = "sequence"
    OBJECT = "object"
    SCALAR = "scalar"
    UNKNOWN = "unknown"


_SCALARS = (str, bytes, int, float, complex, bool, type(None))


def shape_of(value: object) -> Shape:
    if value is UNKNOWN:
        return Shape.UNKNOWN
    if isinstance(value, Mapping):
        return Shape.MAPPING
    if isinstance(value, _SCALARS) or value is MISSING:
        return Shape.SCALAR
    if hasattr(value, "_fields"):
        # Named tuples read like records, not like lists.
        return Shape.OBJECT
    if isinstance(value, Sequence):
        return Shape.SEQUENCE
    return Shape.OBJECT


class FieldReadable(Protocol):
    """The interface for reading a named field from one kind of host value."""

    def accessor(self, name: str) -> tuple[str, str] | None:
        """Return `(access, attribute)` describing how _name_ is read, or None."""
        ...

    def try_read(self, name: str) -> object:
        """Return the value of _name_, or `MISSING` if it can't be read."""
        ...


class MappingReader:
    def __init__(self, obj: Mapping[object, object]):
        self.obj = obj

    def accessor(self, name: str) -> tuple[str, str] | None:
        return ("key", name)

    def try_read(self, name: str) -> object:
        if name in self.obj:
            return self.obj[name]
        if name.isdigit() and int(name) in self.obj:
            return self.obj[int(name)]
        return MISSING


class SequenceReader:
    def __init__(self, obj: Sequence[object]):
        self.obj = obj

    def accessor(self, name: str) -> tuple[str, str] | None:
        if name.isdigit():
            return ("key", name)
        return None

    def try_read(self, name: str) -> object:
        if not name.isdigit():
            return MISSING
        try:
            return self.obj[int(name)]
        except IndexError:
            return MISSING


class ObjectReader:
    def __init__(self, obj: object):
        self.obj = obj

    def accessor(self, name: str) -> tuple[str, str] | None:
        if name.startswith("_"):
            return None

        attr = getattr(self.obj, name, MISSING)
        if attr is not MISSING:
            return ("method", name) if callable(attr) else ("member", name)

        for getter in (f"get{name[:1].upper()}{name[1:]}", f"get_{name}"):
            if callable(getattr(self.obj, getter, None)):
                return ("getter", getter)

        return None

    def try_read(self, name: str) -> object:
        found = self.accessor(name)
        if found is None:
            return MISSING
        access, attr = found
        value = getattr(self.obj, attr)
        if access == "member":
            return value
        return value()


class ScalarReader:
    def __init__(self, obj: object):
        self.obj = obj

    def accessor(self, name: str) -> tuple[str, str] | None:
        return None

    def try_read(self, name: str) -> object:
        return MISSING


def reader_for(obj: object) -> FieldReadable:
    shape = shape_of(obj)
    if shape is Shape.MAPPING:
        return MappingReader(obj)  # type: ignore[arg-type]
    if shape is Shape.SEQUENCE:
        return SequenceReader(obj)  # type: ignore[arg-type]
    if shape is Shape.OBJECT:
        return ObjectReader(obj)
    return ScalarReader(obj)


class Shapes:
    """Compile-time knowledge about variables.

    Names found in the data given to the compiler carry their value as a
    sample. Names the template itself introduces (loop variables, `@set`) are
    declared with an `UNKNOWN` shape. A permissive instance treats every name
    as declared.
    """

    def __init__(
        self,
        data: Mapping[str, object] | None = None,
        *,
        permissive: bool = False,
    ):
        self.data = data or {}
        self.permissive = permissive
        self.declared: set[str] = set()

    def declare(self, name: str) -> None:
        self.declared.add(name)

    def lookup(self, name: str) -> object:
        if name in self.declared:
            return UNKNOWN
        value = self.data.get(name, MISSING)
        if value is not MISSING:
            return value
        return UNKNOWN if self.permissive else UNDECLARED
