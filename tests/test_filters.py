import datetime

import pytest

from micro_blade import FunctionRegistry
from micro_blade import Template
from micro_blade import UnknownFilter
from micro_blade import render
from micro_blade import filters
from micro_blade.filters import register_builtins


def test_filters_apply_left_to_right() -> None:
    registry = FunctionRegistry()
    registry.register_filter("f", lambda value: f"f({value})")
    registry.register_filter("g", lambda value: f"g({value})")
    template = Template("{{ x|f|g }}", {"x": "x"}, registry=registry)
    assert template.render({"x": "x"}) == "g(f(x))"


def test_filter_arguments() -> None:
    data = {"items": ["a", "b", "c"], "sep": "-"}
    assert render("{{ items|join(', ') }}", data) == "a, b, c"
    assert render("{{ items|join(sep) }}", data) == "a-b-c"
    assert render("{{ items|slice(1, 1)|join }}", data) == "b"


def test_filter_on_literal() -> None:
    assert render("{{ 'hello world'|title }}", {}) == "Hello World"
    assert render("{{ 2.5|round }}", {}) == "3"


def test_filtered_output_is_escaped() -> None:
    assert render("{{ text|upper }}", {"text": "<b>"}) == "&lt;B&gt;"


def test_unknown_filter() -> None:
    with pytest.raises(UnknownFilter):
        render("{{ name|nope }}", {"name": "x"})


def test_filters_in_conditions() -> None:
    source = "@if(items|length > 2)many@else\nfew@endif"
    assert render(source, {"items": [1, 2, 3]}) == "many"
    assert render(source, {"items": [1]}) == "few"


def test_builtins_are_registered_once() -> None:
    registry = FunctionRegistry()
    register_builtins(registry)
    assert registry.has_filter("date")
    assert registry.has_function("range")
    assert not registry.has_function("date")


def test_case_filters() -> None:
    assert filters.lower("ABC") == "abc"
    assert filters.upper(None) == ""
    assert filters.title("hello big world") == "Hello Big World"
    assert filters.capitalize("hello world") == "Hello world"


def test_trim() -> None:
    assert filters.trim("  x  ") == "x"
    assert filters.trim("--x--", "-") == "x"


def test_length() -> None:
    assert filters.length([1, 2, 3]) == 3
    assert filters.length("abcd") == 4
    assert filters.length({"a": 1}) == 1
    assert filters.length(None) == 0


def test_escurl_nl2br_notags() -> None:
    assert filters.escurl("a b&c") == "a%20b%26c"
    assert filters.nl2br("a\nb") == "a<br />\nb"
    assert filters.notags("<p>Hi <b>there</b></p>") == "Hi there"


@pytest.mark.parametrize(
    "value,precision,expect",
    [
        (2.5, 0, 3),
        (-2.5, 0, -3),
        (1.005, 2, 1.01),
        (3.14159, 3, 3.142),
    ],
)
def test_round_half_away_from_zero(
    value: float, precision: int, expect: float
) -> None:
    assert filters.round_(value, precision) == expect


def test_floor_and_ceil() -> None:
    assert filters.floor(2.7) == 2
    assert filters.ceil(2.1) == 3
    assert filters.ceil("1.5") == 2


def test_slice() -> None:
    assert filters.slice_("abcdef", 1, 3) == "bcd"
    assert filters.slice_([1, 2, 3, 4], 2) == [3, 4]


def test_merge() -> None:
    assert filters.merge([1], [2, 3]) == [1, 2, 3]
    assert filters.merge({"a": 1}, {"b": 2}) == {"a": 1, "b": 2}


def test_first_and_last() -> None:
    assert filters.first([1, 2, 3]) == 1
    assert filters.last("abc") == "c"
    assert filters.first([]) is None


def test_sort_and_unique() -> None:
    users = [{"name": "b"}, {"name": "a"}, {"name": "b"}]
    assert filters.sort([3, 1, 2]) == [1, 2, 3]
    assert filters.sort(users, "name") == [{"name": "a"}, {"name": "b"}, {"name": "b"}]
    assert filters.unique([1, 2, 1, 3]) == [1, 2, 3]
    assert filters.unique(users, "name") == [{"name": "b"}, {"name": "a"}]


def test_excerpt() -> None:
    assert filters.excerpt("abcdef", 3) == "abc..."
    assert filters.excerpt("abc", 3) == "abc"


def test_slug() -> None:
    assert filters.slug("Hello, World!") == "hello-world"
    assert filters.slug("  Crème brûlée  recipe ") == "creme-brulee-recipe"


def test_wordcount() -> None:
    assert filters.wordcount("one two, three") == 3
    assert filters.wordcount("it's well-known") == 2


def test_date() -> None:
    day = datetime.date(2024, 1, 31)
    assert filters.date_(day, "short") == "31/01/2024"
    assert filters.date_(day, "mysql") == "2024-01-31 00:00:00"
    assert filters.date_("2024-01-31T08:05:00", "time") == "08:05"
    assert filters.date_(day, "%Y") == "2024"


def test_date_filter_in_template() -> None:
    day = datetime.date(2024, 1, 31)
    assert render("{{ day|date('short') }}", {"day": day}) == "31/01/2024"


def test_range_is_inclusive() -> None:
    assert filters.range_(1, 3) == [1, 2, 3]
    assert filters.range_(3, 1, -1) == [3, 2, 1]
    assert render("@foreach(range(1, 3) as i){{ i }}@endforeach", {}) == "123"


def test_chunk() -> None:
    assert filters.chunk([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert filters.chunk(None, 3) == []
    with pytest.raises(ValueError):
        filters.chunk([1], 0)

    source = "@foreach(items|chunk(2) as row){{ row|join }};@endforeach"
    assert render(source, {"items": [1, 2, 3, 4, 5]}) == "12;34;5;"


def test_age() -> None:
    born = datetime.date(2000, 6, 15)
    assert filters.age(born, datetime.datetime(2024, 6, 14)) == 23
    assert filters.age(born, datetime.datetime(2024, 6, 15)) == 24
    assert filters.age("2000-06-15", datetime.datetime(2001, 1, 1)) == 0


def test_timeago() -> None:
    now = datetime.datetime(2024, 1, 1, 11, 5)
    assert filters.timeago(datetime.datetime(2024, 1, 1, 10), now) == (
        "1 hour 5 minutes ago"
    )
    assert filters.timeago("2024-01-04T00:00:00", datetime.datetime(2024, 1, 1)) == (
        "in 3 days"
    )
    assert filters.timeago(now, now) == "0 seconds ago"
    assert filters.timeago(datetime.datetime(2024, 1, 1, 11, 4), now) == (
        "1 minute ago"
    )
