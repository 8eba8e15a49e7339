import pytest

from micro_blade import TemplateSyntaxError
from micro_blade.scanner import TagScanner
from micro_blade.scanner import find_closing


def scan(source: str) -> list[tuple[str, str, str | None]]:
    return [
        (token.kind, token.value, token.args)
        for token in TagScanner().scan(source).tokens
    ]


def test_text_and_output() -> None:
    assert scan("Hello {{ name }}!") == [
        ("TOKEN_TEXT", "Hello ", None),
        ("TOKEN_OUT", "name", None),
        ("TOKEN_TEXT", "!", None),
    ]


def test_raw_output() -> None:
    assert scan("{{{ html }}}") == [("TOKEN_RAW_OUT", "html", None)]


def test_escaped_output_is_literal_text() -> None:
    assert scan("@{{ name }}") == [("TOKEN_TEXT", "{{ name }}", None)]


def test_directive_with_and_without_arguments() -> None:
    assert scan("@if(a > 1)x@endif") == [
        ("TOKEN_DIRECTIVE", "if", "a > 1"),
        ("TOKEN_TEXT", "x", None),
        ("TOKEN_DIRECTIVE", "endif", None),
    ]


def test_space_before_directive_arguments() -> None:
    assert scan("@foreach (users as user)") == [
        ("TOKEN_DIRECTIVE", "foreach", "users as user"),
    ]


def test_nested_brackets_in_arguments() -> None:
    assert scan("@include('row', rows[0])") == [
        ("TOKEN_DIRECTIVE", "include", "'row', rows[0]"),
    ]


def test_closing_bracket_in_string_argument() -> None:
    assert scan("@section('a)b')") == [
        ("TOKEN_DIRECTIVE", "section", "'a)b'"),
    ]


def test_comments_hide_markup() -> None:
    assert scan("a{* {{ secret }} @if(x) *}b") == [
        ("TOKEN_TEXT", "a", None),
        ("TOKEN_COMMENT", " {{ secret }} @if(x) ", None),
        ("TOKEN_TEXT", "b", None),
    ]


def test_comment_keeps_positions() -> None:
    tokens = TagScanner().scan("{* x *}{{ y }}").tokens
    assert tokens[1].start == 7


def test_tokens_are_contiguous() -> None:
    source = "a {{ b }} @if(c)d@endif {{{ e }}}"
    tokens = TagScanner().scan(source).tokens
    for previous, token in zip(tokens, tokens[1:]):
        assert token.start > previous.start
    assert tokens[0].start == 0


def test_script_blocks() -> None:
    scanned = TagScanner().scan("@script\nalert('{{ x }}');\n@endscript")
    assert [(t.kind, t.value) for t in scanned.tokens] == [
        ("TOKEN_DIRECTIVE", "javascript")
    ]
    assert list(scanned.scripts) == ["alert('{{ x }}');"]


def test_line_endings_are_normalized() -> None:
    assert scan("a\r\nb\rc") == [("TOKEN_TEXT", "a\nb\nc", None)]


def test_mismatched_braces() -> None:
    with pytest.raises(TemplateSyntaxError, match="mismatched braces"):
        scan("{{ name }}}")


def test_unterminated_output() -> None:
    with pytest.raises(TemplateSyntaxError, match="unterminated output tag"):
        scan("{{ name ")


def test_unterminated_directive_arguments() -> None:
    with pytest.raises(TemplateSyntaxError) as exc:
        scan("@if(a\n)")
    assert exc.value.fragment == "@if(a"


def test_find_closing() -> None:
    assert find_closing("(a(b)c)", 0) == 6
    assert find_closing("(a", 0) == -1
    assert find_closing("(a]", 0) == -1
    assert find_closing("('(')", 0) == 4
