from micro_blade import Template
from micro_blade import render


def test_whitespace_control() -> None:
    source = "\n".join(
        [
            "<ul>",
            "@foreach(y as x)",
            "    <li>{{ x }}</li>",
            "@endforeach",
            "</ul>",
        ]
    )

    expect = "\n".join(
        [
            "<ul>",
            "    <li>1</li>",
            "    <li>2</li>",
            "    <li>3</li>",
            "    <li>4</li>",
            "</ul>",
        ]
    )

    data = {"y": [1, 2, 3, 4]}
    assert render(source, data) == expect


def test_lstrip_blocks() -> None:
    source = "\n".join(
        [
            "<ul>",
            "    @foreach(y as x)",
            "    <li>{{ x }}</li>",
            "    @endforeach",
            "</ul>",
        ]
    )

    expect = "\n".join(
        [
            "<ul>",
            "    <li>1</li>",
            "    <li>2</li>",
            "</ul>",
        ]
    )

    data = {"y": [1, 2]}
    assert Template(source, data, lstrip_blocks=True).render(data) == expect


def test_indented_directive_without_lstrip() -> None:
    source = "<p>\n  @if(a)\n  yes\n  @endif\n</p>"
    assert render(source, {"a": True}) == "<p>\n    yes\n  </p>"


def test_no_trim_blocks() -> None:
    source = "@if(a)\nyes\n@endif\n"
    data = {"a": True}
    assert Template(source, data, trim_blocks=False).render(data) == "\nyes\n\n"
    assert render(source, data) == "yes\n"


def test_output_directives_keep_newlines() -> None:
    source = "@push('s')x@endpush\n@stack('s')\n."
    assert render(source, {}) == "x\n."


def test_comment_on_its_own_line() -> None:
    source = "a\n{* note *}\nb"
    assert render(source, {}) == "a\nb"
