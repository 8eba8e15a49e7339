"""Bundles of filters, functions, directives, conditions and shared data."""

from __future__ import annotations

import html
from datetime import datetime
from typing import Callable
from typing import Mapping

from .filters import as_list
from .filters import pluralize
from .filters import to_datetime


class Extension:
    """Base class for engine extensions.

    Override any of the methods below and pass an instance to
    `Engine.add_extension()`. Every name is registered with the engine's
    registry, so a name that is already taken raises `RegistrationConflict`.

    For example:

        class ShoutExtension(Extension):
            def filters(self):
                return {"shout": lambda text: f"{text.upper()}!"}

        engine.add_extension(ShoutExtension())
    """

    def shared(self) -> Mapping[str, object]:
        """Data available to every template."""
        return {}

    def filters(self) -> Mapping[str, Callable[..., object]]:
        return {}

    def functions(self) -> Mapping[str, Callable[..., object]]:
        return {}

    def directives(self) -> Mapping[str, Callable[..., object]]:
        """Directives whose return value is output where they are used."""
        return {}

    def conditions(self) -> Mapping[str, Callable[..., object]]:
        """Conditions usable as `@name(...)`, `@else<name>(...)`, `@end<name>`."""
        return {}


class TextExtension(Extension):
    """String predicates and helpers."""

    def shared(self) -> Mapping[str, object]:
        return {
            "text": {
                "lorem": "Lorem ipsum dolor sit amet",
                "placeholder": "Default text",
            }
        }

    def filters(self) -> Mapping[str, Callable[..., object]]:
        return {"escape_attr": _escape_attr}

    def functions(self) -> Mapping[str, Callable[..., object]]:
        return {
            "str_starts_with": lambda text, prefix: str(text).startswith(prefix),
            "str_ends_with": lambda text, suffix: str(text).endswith(suffix),
            "str_contains": lambda text, needle: needle in str(text),
            "str_replace": lambda text, old, new: str(text).replace(old, new),
        }

    def conditions(self) -> Mapping[str, Callable[..., object]]:
        return {
            "empty_text": lambda value: not str(value or "").strip(),
            "contains": lambda text, needle: needle in str(text or ""),
        }


def _escape_attr(value: object) -> str:
    return html.escape("" if value is None else str(value), quote=True)


class ArrayExtension(Extension):
    """Filters and functions over lists of records.

    `sort`, `unique`, `first` and `last` are built-in filters already.
    """

    def filters(self) -> Mapping[str, Callable[..., object]]:
        return {"filter": _where, "map": _column}

    def functions(self) -> Mapping[str, Callable[..., object]]:
        return {
            "array_contains": _contains,
            "array_keys": _keys,
            "array_values": as_list,
            "array_sum": _sum,
            "array_avg": _avg,
        }


def _where(value: object, key: str, expected: object) -> list[object]:
    result = []
    for item in as_list(value):
        found = _field(item, key)
        if type(found) is type(expected) and found == expected:
            result.append(item)
    return result


def _field(item: object, key: str) -> object:
    if isinstance(item, Mapping):
        return item.get(key)
    return getattr(item, key, None)


def _has(item: object, key: str) -> bool:
    if isinstance(item, Mapping):
        return key in item
    return hasattr(item, key)


def _column(value: object, key: str) -> list[object]:
    return [_field(item, key) for item in as_list(value) if _has(item, key)]


def _contains(value: object, needle: object) -> bool:
    items = as_list(value)
    if isinstance(needle, Mapping):
        return any(
            isinstance(item, Mapping)
            and all(k in item and item[k] == v for k, v in needle.items())
            for item in items
        )
    return needle in items


def _keys(value: object) -> list[object]:
    if isinstance(value, Mapping):
        return list(value.keys())
    return list(range(len(as_list(value))))


def _numbers(value: object, key: str | None) -> list[float]:
    items = _column(value, key) if key is not None else as_list(value)
    return [item for item in items if item is not None]  # type: ignore[misc]


def _sum(value: object, key: str | None = None) -> float:
    return sum(_numbers(value, key))


def _avg(value: object, key: str | None = None) -> float:
    numbers = _numbers(value, key)
    if not numbers:
        return 0
    return sum(numbers) / len(numbers)


class DateExtension(Extension):
    """Calendar formatting, durations and date predicates.

    `age` and `timeago` are built-in filters already.
    """

    def filters(self) -> Mapping[str, Callable[..., object]]:
        return {"calendar": _calendar, "duration": _duration}

    def functions(self) -> Mapping[str, Callable[..., object]]:
        return {
            "is_future": lambda value: to_datetime(value) > _now(value),
            "is_past": lambda value: to_datetime(value) < _now(value),
            "is_today": _is_today,
            "is_weekend": lambda value: to_datetime(value).weekday() >= 5,
        }


def _now(value: object) -> datetime:
    return datetime.now(to_datetime(value).tzinfo)


def _is_today(value: object) -> bool:
    return to_datetime(value).date() == _now(value).date()


def _calendar(value: object) -> str:
    moment = to_datetime(value)
    return f"{moment.day} {moment.strftime('%B %Y')}"


def _duration(seconds: object) -> str:
    """Format a number of seconds as hours and minutes."""
    total = int(float(seconds or 0))  # type: ignore[arg-type]
    hours, rest = divmod(total, 3600)
    minutes = rest // 60

    if hours > 0:
        if minutes > 0:
            return f"{pluralize(hours, 'hour')} {pluralize(minutes, 'minute')}"
        return pluralize(hours, "hour")
    return pluralize(minutes, "minute")
