import pytest

from micro_blade import DirectiveSyntaxError
from micro_blade import FunctionRegistry
from micro_blade import InvalidExpression
from micro_blade import SectionStateError
from micro_blade import Template
from micro_blade import UnknownDirective
from micro_blade import render
from micro_blade.filters import register_builtins


def test_output() -> None:
    assert render("{{ name }} is {{ age }}", {"name": "John", "age": 30}) == (
        "John is 30"
    )


def test_escaping() -> None:
    data = {"html": "<a href='x'>&</a>"}
    assert render("{{ html }}", data) == "&lt;a href=&#x27;x&#x27;&gt;&amp;&lt;/a&gt;"
    assert render("{{{ html }}}", data) == "<a href='x'>&</a>"


def test_html_safe_values_are_not_escaped() -> None:
    class Safe:
        def __html__(self) -> str:
            return "<b>safe</b>"

    assert render("{{ value }}", {"value": Safe()}) == "<b>safe</b>"


def test_none_renders_empty() -> None:
    assert render("[{{ value }}]", {"value": None}) == "[]"


def test_foreach() -> None:
    data = {"users": [{"name": "A"}, {"name": "B"}]}
    assert render("@foreach(users as user){{ user.name }}@endforeach", data) == "AB"


def test_foreach_with_keys() -> None:
    source = "@foreach(scores as name => score){{ name }}={{ score }};@endforeach"
    assert render(source, {"scores": {"a": 1, "b": 2}}) == "a=1;b=2;"


def test_foreach_over_nothing() -> None:
    source = "[@foreach(items as item){{ item }}@endforeach]"
    assert render(source, {"items": None}) == "[]"
    assert render(source, {"items": "abc"}) == "[]"


def test_foreach_if() -> None:
    source = "@foreach(numbers as n if n > 1){{ n }}@endforeach"
    assert render(source, {"numbers": [1, 2, 3]}) == "23"


def test_loop_variable_does_not_leak() -> None:
    source = "@foreach(items as item){{ item }}@endforeach[{{ item }}]"
    assert render(source, {"items": [1, 2]}) == "12[]"


def test_if_else() -> None:
    source = "@if(age >= 18)adult@else minor@endif"
    assert render(source, {"age": 15}) == " minor"
    assert render(source, {"age": 20}) == "adult"


def test_elseif() -> None:
    source = "@if(n == 1)one@elseif(n == 2)two@else\nmany@endif"
    assert render(source, {"n": 1}) == "one"
    assert render(source, {"n": 2}) == "two"
    assert render(source, {"n": 3}) == "many"


def test_logical_operators() -> None:
    data = {"a": True, "b": False}
    assert render("@if(a and not b)yes@endif", data) == "yes"
    assert render("@if(a && b)yes@else\nno@endif", data) == "no"
    assert render("@if(b || a)yes@endif", data) == "yes"
    assert render("@if(!(a or b))yes@else\nno@endif", data) == "no"
    assert render("@if(b or (a and a))yes@endif", data) == "yes"


def test_comparison_operators() -> None:
    data = {"count": 1, "name": "x"}
    assert render("@if(count === '1')same@else\ndifferent@endif", data) == (
        "different"
    )
    assert render("@if(count == 1)same@endif", data) == "same"
    assert render("@if(name <> 'y')ne@endif", data) == "ne"
    assert render("@if(name !== 'x')ne@else\neq@endif", data) == "eq"


def test_invalid_comparison() -> None:
    with pytest.raises(InvalidExpression):
        render("@if(a >)x@endif", {"a": 1})


def test_ordering_missing_values() -> None:
    source = "@if(age >= 18)adult@else minor@endif"
    assert Template(source).render({}) == " minor"
    assert render("@if(user.age < 18)minor@endif", {"user": {}}) == ""
    assert render("@if(age == null)none@endif", {"age": None}) == "none"


def test_ordering_missing_values_strict() -> None:
    source = "@if(age >= 18)adult@endif"
    with pytest.raises(InvalidExpression):
        Template(source, {"age": None}).render({"age": None}, strict=True)


def test_isset() -> None:
    source = "@isset(user.name)yes@else\nno@endisset"
    assert render(source, {"user": {"name": "x"}}) == "yes"
    assert render(source, {"user": {"name": None}}) == "no"
    assert render(source, {"user": {}}) == "no"


def test_empty() -> None:
    source = "@empty(items)none@else\nsome@endempty"
    assert render(source, {"items": []}) == "none"
    assert render(source, {"items": [1]}) == "some"


def test_forelse() -> None:
    source = "@forelse(items as item){{ item }}@empty\nnone@endforelse"
    assert render(source, {"items": [1, 2]}) == "12"
    assert render(source, {"items": []}) == "none"


def test_forelse_without_empty_branch() -> None:
    source = "@forelse(items as item){{ item }}@endforelse"
    assert render(source, {"items": []}) == ""


def test_for() -> None:
    assert render("@for(i in 0 count 3){{ i }}@endfor", {}) == "012"
    assert render("@for(i in 1 count items){{ i }}@endfor", {"items": "abc"}) == "12"
    source = "@for(i in 0 count items){{ i }}@endfor"
    assert render(source, {"items": ["a", "b"]}) == "01"


def test_while_and_set() -> None:
    registry = FunctionRegistry()
    register_builtins(registry)
    registry.register_filter("inc", lambda value: value + 1)
    source = "@set(n = 0)@while(n < 3){{ n }}@set(n = n|inc)@endwhile"
    assert Template(source, {}, registry=registry).render({}) == "012"


def test_set() -> None:
    source = "@set(greeting = 'Hi')@set(who = name|upper){{ greeting }} {{ who }}"
    assert render(source, {"name": "ann"}) == "Hi ANN"


def test_set_inside_loop_updates_outer_variable() -> None:
    source = (
        "@set(last = '')"
        "@foreach(items as item)@set(last = item)@endforeach"
        "{{ last }}"
    )
    assert render(source, {"items": ["a", "b"]}) == "b"


def test_break_and_continue() -> None:
    data = {"items": [1, 2, 3, 4]}
    source = "@foreach(items as i)@if(i == 3)@break@endif{{ i }}@endforeach"
    assert render(source, data) == "12"
    source = "@foreach(items as i)@continue(i == 2){{ i }}@endforeach"
    assert render(source, data) == "134"
    source = "@foreach(items as i)@break(i > 2){{ i }}@endforeach"
    assert render(source, data) == "12"


def test_break_outside_loop() -> None:
    with pytest.raises(DirectiveSyntaxError, match="only valid inside a loop"):
        render("@break", {})


def test_switch() -> None:
    source = (
        "@switch(role)\n"
        "@case('admin')A@break"
        "@case('editor')E"
        "@case('viewer')V@break"
        "@default\nD"
        "@endswitch"
    )
    assert render(source, {"role": "admin"}) == "A"
    assert render(source, {"role": "editor"}) == "EV"
    assert render(source, {"role": "viewer"}) == "V"
    assert render(source, {"role": "guest"}) == "D"


def test_switch_without_match_or_default() -> None:
    source = "@switch(n)@case(1)one@endswitch"
    assert render(source, {"n": 2}) == ""


def test_switch_content_before_first_case() -> None:
    with pytest.raises(DirectiveSyntaxError, match="first '@case'"):
        render("@switch(n)oops@case(1)one@endswitch", {"n": 1})


def test_continue_not_allowed_in_switch() -> None:
    with pytest.raises(DirectiveSyntaxError):
        render("@switch(n)@case(1)@continue@endswitch", {"n": 1})


def test_comments_are_removed() -> None:
    assert render("a{* note {{ x }} *}b", {}) == "ab"


def test_script_block() -> None:
    source = "@script\nalert('{{ x }}');\n@endscript"
    assert render(source, {}) == "<script>\nalert('{{ x }}');\n</script>"


def test_escaped_output_tag() -> None:
    assert render("@{{ name }}", {"name": "x"}) == "{{ name }}"


def test_email_addresses_are_text() -> None:
    source = "Mail john@example.com or {{ who }} at ann_b@example.org"
    assert render(source, {"who": "ann"}) == (
        "Mail john@example.com or ann at ann_b@example.org"
    )


def test_unknown_directive() -> None:
    with pytest.raises(UnknownDirective):
        render("Hello @frobnicate", {})


def test_unclosed_block() -> None:
    with pytest.raises(DirectiveSyntaxError, match="'@foreach' is never closed"):
        render("@foreach(items as item){{ item }}", {"items": []})


def test_mismatched_end() -> None:
    with pytest.raises(DirectiveSyntaxError, match="expected '@endif'"):
        render("@if(a)x@endforeach", {"a": 1})


def test_missing_arguments() -> None:
    with pytest.raises(DirectiveSyntaxError, match="expects arguments"):
        render("@if()x@endif", {})


def test_malformed_foreach() -> None:
    with pytest.raises(DirectiveSyntaxError):
        render("@foreach(items)x@endforeach", {"items": []})


def test_else_after_else() -> None:
    with pytest.raises(DirectiveSyntaxError, match="after '@else'"):
        render("@if(a)x@else\ny@else\nz@endif", {"a": 1})


def test_nested_sections() -> None:
    with pytest.raises(SectionStateError):
        render("@section('a')@section('b')x@endsection@endsection", {})


def test_error_points_at_line() -> None:
    with pytest.raises(DirectiveSyntaxError) as exc:
        render("Hello\n@endif", {})
    message = str(exc.value)
    assert "unexpected '@endif'" in message
    assert "<string>:2:0" in message
    assert "^^^^^" in message
