import pytest

from micro_blade import DirectiveSyntaxError
from micro_blade import Engine
from micro_blade import MemorySourceStore
from micro_blade import SectionStateError
from micro_blade import TemplateError
from micro_blade import TemplateNotFound
from micro_blade import render


def test_child_section_fills_layout(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source(
        "layout", "<title>@yield('title', 'Default')</title>@yield('content')"
    )
    store.set_source(
        "page",
        "@extends('layout')\n@section('content')\nHello {{ name }}\n@endsection\n",
    )
    assert engine.render("page", {"name": "World"}) == (
        "<title>Default</title>Hello World\n"
    )


def test_section_overrides_yield_default(
    engine: Engine, store: MemorySourceStore
) -> None:
    store.set_source("layout", "<title>@yield('title', 'Default')</title>")
    store.set_source("page", "@extends('layout')\n@section('title', heading)")
    assert engine.render("page", {"heading": "<News>"}) == (
        "<title>&lt;News&gt;</title>"
    )


def test_layout_data(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("layout", "{{ title }}: @yield('body')")
    store.set_source(
        "page", "@extends('layout' with meta)\n@section('body')text@endsection"
    )
    assert engine.render("page", {"meta": {"title": "T"}}) == "T: text"


def test_nested_layouts(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("base", "[@yield('body')]")
    store.set_source(
        "middle", "@extends('base')\n@section('body')<@yield('inner')>@endsection"
    )
    store.set_source("page", "@extends('middle')\n@section('inner')x@endsection")
    assert engine.render("page") == "[<x>]"


def test_layout_depth_is_bounded(tmp_path, store: MemorySourceStore) -> None:
    engine = Engine.create(
        template_path=tmp_path,
        compiled_path=tmp_path,
        store=store,
        max_layout_depth=2,
    )
    store.set_source("loop", "@extends('loop')")
    with pytest.raises(TemplateError, match="nested more than 2 deep"):
        engine.render("loop")


def test_missing_layout(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("page", "@extends('nope')")
    with pytest.raises(TemplateNotFound):
        engine.render("page")


def test_stacks_accumulate_in_order() -> None:
    source = "@push('s')A@endpush@push('s')B@endpush@stack('s')"
    assert render(source, {}) == "AB"


def test_pushes_from_child_reach_layout(
    engine: Engine, store: MemorySourceStore
) -> None:
    store.set_source("layout", "<head>@stack('scripts')</head>@yield('content')")
    store.set_source(
        "page",
        "@extends('layout')\n"
        "@push('scripts')\n<script src=\"a.js\"></script>\n@endpush\n"
        "@section('content')body@endsection",
    )
    assert engine.render("page") == (
        '<head><script src="a.js"></script>\n</head>body'
    )


def test_nested_pushes() -> None:
    source = "@push('a')A@push('b')B@endpush@endpush@stack('a')|@stack('b')"
    assert render(source, {}) == "A|B"


def test_unclosed_nested_push() -> None:
    with pytest.raises(DirectiveSyntaxError, match="never closed"):
        render("@push('a')A@push('b')B@endpush", {})


def test_inline_push_is_escaped() -> None:
    assert render("@push('s', '<b>')@stack('s')", {}) == "&lt;b&gt;"


def test_stack_default() -> None:
    assert render("@stack('none', 'nothing')|", {}) == "nothing|"


def test_yield_fallback(tmp_path, store: MemorySourceStore) -> None:
    engine = Engine.create(
        template_path=tmp_path,
        compiled_path=tmp_path,
        store=store,
        yield_fallback="?",
    )
    store.set_source("page", "[@yield('missing')]")
    assert engine.render("page") == "[?]"


def test_strict_yield(tmp_path, store: MemorySourceStore) -> None:
    engine = Engine.create(
        template_path=tmp_path,
        compiled_path=tmp_path,
        store=store,
        strict_yield=True,
    )
    store.set_source("page", "@yield('missing')")
    with pytest.raises(SectionStateError):
        engine.render("page")


def test_yield_default_is_escaped() -> None:
    assert render("@yield('title', '<t>')", {}) == "&lt;t&gt;"


def test_include_sees_caller_scope(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("greeting", "Hi {{ who }}!")
    store.set_source(
        "page", "@foreach(names as who)@include('greeting')@endforeach"
    )
    assert engine.render("page", {"names": ["Ann", "Bob"]}) == "Hi Ann!Hi Bob!"


def test_include_with_data(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("greeting", "Hi {{ who }}!")
    store.set_source("page", "@include('greeting', extra) @include('greeting')")
    data = {"who": "Ann", "extra": {"who": "Bob"}}
    assert engine.render("page", data) == "Hi Bob! Hi Ann!"


def test_include_missing_template(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("page", "@include('nope')")
    with pytest.raises(TemplateNotFound):
        engine.render("page")


def test_include_needs_an_engine() -> None:
    with pytest.raises(TemplateNotFound):
        render("@include('partial')", {})


def test_each(engine: Engine, store: MemorySourceStore) -> None:
    store.set_source("item", "<li>{{ item }}</li>")
    store.set_source("empty", "Nothing")
    store.set_source("raw", "@each('item', items, 'item', 'raw|<li>none</li>')")
    store.set_source("fallback", "@each('item', items, 'item', 'empty')")
    assert engine.render("raw", {"items": [1, 2]}) == "<li>1</li><li>2</li>"
    assert engine.render("raw", {"items": []}) == "<li>none</li>"
    assert engine.render("fallback", {"items": []}) == "Nothing"


def test_sections_are_shared_with_includes(
    engine: Engine, store: MemorySourceStore
) -> None:
    store.set_source("partial", "@section('title')From partial@endsection")
    store.set_source("page", "@include('partial')@yield('title')")
    assert engine.render("page") == "From partial"
