import pytest

from micro_blade import FunctionRegistry
from micro_blade import RegistrationConflict
from micro_blade import UnknownDirective
from micro_blade import UnknownFilter
from micro_blade import UnknownFunction


def test_filters_and_functions_are_separate() -> None:
    registry = FunctionRegistry()
    registry.register_filter("size", len)
    registry.register_function("size", lambda: 0)
    assert registry.resolve_filter("size", "abc") == 3
    assert registry.resolve_function("size") == 0


def test_duplicate_names() -> None:
    registry = FunctionRegistry()
    registry.register_filter("x", str)
    with pytest.raises(RegistrationConflict):
        registry.register_filter("x", repr)


def test_invalid_registrations() -> None:
    registry = FunctionRegistry()
    with pytest.raises(ValueError):
        registry.register_filter("not-a-name", str)
    with pytest.raises(TypeError):
        registry.register_function("f", "not callable")  # type: ignore[arg-type]


def test_builtin_directive_names_are_reserved() -> None:
    registry = FunctionRegistry()
    with pytest.raises(RegistrationConflict):
        registry.register_directive("Section", str)
    with pytest.raises(RegistrationConflict):
        registry.register_condition("if", bool)
    with pytest.raises(RegistrationConflict):
        registry.register_condition("section", bool)


def test_unknown_names() -> None:
    registry = FunctionRegistry()
    with pytest.raises(UnknownFilter):
        registry.resolve_filter("nope", 1)
    with pytest.raises(UnknownFunction):
        registry.resolve_function("nope")
    with pytest.raises(UnknownDirective):
        registry.call_directive("nope")
    with pytest.raises(UnknownDirective):
        registry.check_condition("nope")


def test_scoped_registry_shadows_directives() -> None:
    parent = FunctionRegistry()
    parent.register_directive("badge", lambda: "parent")
    child = parent.scope()
    child.register_directive("badge", lambda: "child")
    child.register_directive("extra", lambda: "extra")

    assert child.call_directive("badge") == "child"
    assert parent.call_directive("badge") == "parent"
    assert not parent.has_directive("extra")

    with pytest.raises(RegistrationConflict):
        child.register_directive("extra", str)


def test_scoped_registry_shares_filters() -> None:
    parent = FunctionRegistry()
    child = parent.scope()
    child.register_filter("shout", str.upper)
    assert parent.has_filter("shout")


def test_condition_result_is_bool() -> None:
    registry = FunctionRegistry()
    registry.register_condition("has", lambda items: items)
    assert registry.check_condition("has", [1]) is True
    assert registry.check_condition("has", []) is False
