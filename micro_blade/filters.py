"""Built-in filters and functions."""

from __future__ import annotations

import math
import re
import unicodedata
from datetime import date
from datetime import datetime
from decimal import ROUND_HALF_UP
from decimal import Decimal
from typing import TYPE_CHECKING
from typing import Callable
from typing import Iterable
from typing import Mapping
from urllib.parse import quote

if TYPE_CHECKING:
    from .registry import FunctionRegistry


DATE_FORMATS = {
    "short": "%d/%m/%Y",
    "medium": "%d %b %Y",
    "long": "%d %B %Y %H:%M",
    "full": "%A %d %B %Y %H:%M:%S",
    "time": "%H:%M",
    "time_full": "%H:%M:%S",
    "mysql": "%Y-%m-%d %H:%M:%S",
    "rss": "%a, %d %b %Y %H:%M:%S %z",
}

_RE_TAG = re.compile(r"<[^>]*>")
_RE_NON_SLUG = re.compile(r"[^\w\s-]")
_RE_SLUG_SEPARATORS = re.compile(r"[\s_-]+")
_RE_WORD = re.compile(r"[^\W\d_]+(?:['-][^\W\d_]+)*")


def _text(value: object) -> str:
    return "" if value is None else str(value)


def as_list(value: object) -> list[object]:
    if value is None:
        return []
    if isinstance(value, str):
        return list(value)
    if isinstance(value, Mapping):
        return list(value.values())
    if isinstance(value, Iterable):
        return list(value)
    return [value]


def lower(value: object) -> str:
    return _text(value).lower()


def upper(value: object) -> str:
    return _text(value).upper()


def title(value: object) -> str:
    """Uppercase the first letter of each space-separated word."""
    return " ".join(word[:1].upper() + word[1:] for word in _text(value).split(" "))


def capitalize(value: object) -> str:
    text = _text(value)
    return text[:1].upper() + text[1:]


def trim(value: object, characters: str | None = None) -> str:
    return _text(value).strip(characters)


def length(value: object) -> int:
    if value is None:
        return 0
    if isinstance(value, (int, float)):
        return len(str(value))
    try:
        return len(value)  # type: ignore[arg-type]
    except TypeError:
        return 0


def join(value: object, separator: str = "") -> str:
    return _text(separator).join(_text(item) for item in as_list(value))


def escurl(value: object) -> str:
    return quote(_text(value), safe="")


def nl2br(value: object) -> str:
    return re.sub(r"\n", "<br />\n", _text(value))


def notags(value: object) -> str:
    return _RE_TAG.sub("", _text(value))


def round_(value: object, precision: int = 0) -> float | int:
    """Round half away from zero, like PHP's `round()`."""
    number = Decimal(str(value or 0))
    exponent = Decimal(1).scaleb(-int(precision))
    rounded = number.quantize(exponent, rounding=ROUND_HALF_UP)
    return float(rounded) if precision else int(rounded)


def floor(value: object) -> int:
    return math.floor(float(value or 0))  # type: ignore[arg-type]


def ceil(value: object) -> int:
    return math.ceil(float(value or 0))  # type: ignore[arg-type]


def slice_(value: object, start: int = 0, size: int | None = None) -> object:
    """Return _size_ items (or characters) of _value_ starting at _start_."""
    stop = None if size is None else int(start) + int(size)
    if isinstance(value, str):
        return value[int(start) : stop]
    return as_list(value)[int(start) : stop]


def chunk(value: object, size: int) -> list[list[object]]:
    size = int(size)
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    items = as_list(value)
    return [items[i : i + size] for i in range(0, len(items), size)]


def merge(value: object, *others: object) -> object:
    if isinstance(value, Mapping):
        merged = dict(value)
        for other in others:
            if isinstance(other, Mapping):
                merged.update(other)
        return merged

    items = as_list(value)
    for other in others:
        items.extend(as_list(other))
    return items


def first(value: object) -> object:
    items = as_list(value)
    return items[0] if items else None


def last(value: object) -> object:
    items = as_list(value)
    return items[-1] if items else None


def _sort_key(key: str | None) -> Callable[[object], object] | None:
    if key is None:
        return None

    def get(item: object) -> object:
        if isinstance(item, Mapping):
            return item.get(key)
        return getattr(item, key, None)

    return get


def sort(value: object, key: str | None = None) -> list[object]:
    return sorted(as_list(value), key=_sort_key(key))  # type: ignore[arg-type]


def unique(value: object, key: str | None = None) -> list[object]:
    get = _sort_key(key)
    seen: list[object] = []
    result: list[object] = []

    for item in as_list(value):
        marker = get(item) if get else item
        if marker not in seen:
            seen.append(marker)
            result.append(item)

    return result


def excerpt(value: object, length: int = 100) -> str:
    text = _text(value)
    if len(text) <= int(length):
        return text
    return text[: int(length)] + "..."


def slug(value: object) -> str:
    text = unicodedata.normalize("NFKD", _text(value))
    text = text.encode("ascii", "ignore").decode("ascii")
    text = _RE_NON_SLUG.sub("", text).strip().lower()
    return _RE_SLUG_SEPARATORS.sub("-", text).strip("-")


def wordcount(value: object) -> int:
    return len(_RE_WORD.findall(_text(value)))


def to_datetime(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    if value is None or value == "now":
        return datetime.now()
    return datetime.fromisoformat(str(value))


def date_(value: object, format: str = "medium") -> str:
    """Format a date, a datetime, a timestamp or an ISO 8601 string.

    _format_ is one of the names in `DATE_FORMATS` or a `strftime` pattern.
    """
    return to_datetime(value).strftime(DATE_FORMATS.get(format, format))


def _now(value: datetime, now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(value.tzinfo)


def age(value: object, now: datetime | None = None) -> int:
    """Return the number of full years since _value_."""
    born = to_datetime(value)
    today = _now(born, now)
    years = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        years -= 1
    return years


_TIME_UNITS = (
    ("year", 365 * 86400),
    ("month", 30 * 86400),
    ("week", 7 * 86400),
    ("day", 86400),
    ("hour", 3600),
    ("minute", 60),
    ("second", 1),
)


def pluralize(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def timeago(value: object, now: datetime | None = None) -> str:
    """Describe the distance from _now_ to _value_ with at most two units.

    For example, "1 hour 5 minutes ago" or "in 3 days".
    """
    moment = to_datetime(value)
    seconds = int((_now(moment, now) - moment).total_seconds())
    remaining = abs(seconds)
    parts: list[str] = []

    for unit, size in _TIME_UNITS:
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(pluralize(count, unit))
        if len(parts) == 2:
            break

    text = " ".join(parts) or "0 seconds"
    return f"in {text}" if seconds < 0 else f"{text} ago"


def range_(start: int, end: int, step: int = 1) -> list[int]:
    """Return integers from _start_ to _end_, both inclusive."""
    step = int(step) or 1
    end = int(end)
    return list(range(int(start), end + (1 if step > 0 else -1), step))


BUILTIN_FILTERS: dict[str, Callable[..., object]] = {
    "lower": lower,
    "upper": upper,
    "title": title,
    "capitalize": capitalize,
    "trim": trim,
    "length": length,
    "join": join,
    "escurl": escurl,
    "nl2br": nl2br,
    "notags": notags,
    "round": round_,
    "floor": floor,
    "ceil": ceil,
    "chunk": chunk,
    "slice": slice_,
    "merge": merge,
    "first": first,
    "last": last,
    "sort": sort,
    "unique": unique,
    "excerpt": excerpt,
    "slug": slug,
    "wordcount": wordcount,
    "date": date_,
    "age": age,
    "timeago": timeago,
}

BUILTIN_FUNCTIONS: dict[str, Callable[..., object]] = {
    "range": range_,
}


def register_builtins(registry: FunctionRegistry) -> None:
    for name, fn in BUILTIN_FILTERS.items():
        registry.register_filter(name, fn)
    for name, fn in BUILTIN_FUNCTIONS.items():
        registry.register_function(name, fn)
