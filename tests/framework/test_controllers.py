"""Tests for spry.framework.controllers."""

import sys

import pytest

from spry.core.errors import (
    ClassNotFoundError,
    ControllerNotFoundError,
    MethodNotCallableError,
    MethodNotFoundError,
)
from spry.framework.controllers import (
    CallableRef,
    ControllerRegistry,
    NamedRef,
    capture_echo,
    import_path,
    invoke,
    parse_ref,
    positional_capacity,
)


class Counter:
    instances = 0

    def __init__(self):
        Counter.instances += 1

    def hit(self, params=None):
        return params

    def _private(self):
        return None

    size = 3


class TestParseRef:
    def test_class_method(self):
        assert parse_ref(" Greeter :: hello ") == NamedRef("Greeter", "hello")

    def test_dotted_path(self):
        assert parse_ref("pkg.mod.func") == NamedRef("pkg.mod", "func")

    def test_pair(self):
        ref = parse_ref((Counter, "hit"))
        assert ref == NamedRef(Counter, "hit")
        assert str(ref) == "Counter::hit"

    def test_callable(self):
        assert parse_ref(len) == CallableRef(len)

    @pytest.mark.parametrize("ref", [None, "", "   ", "plainword", 42, ("", "x"), (Counter, 1)])
    def test_unusable(self, ref):
        assert parse_ref(ref) is None


class TestImportPath:
    def test_module(self):
        import json

        assert import_path("json") is json

    def test_attribute(self):
        from json import dumps

        assert import_path("json.dumps") is dumps

    def test_missing(self):
        assert import_path("no_such_module_xyz.thing") is None
        assert import_path("json.no_such_attr") is None


class TestResolve:
    @pytest.fixture
    def registry(self):
        reg = ControllerRegistry()
        reg.register(Counter)
        return reg

    def test_registered_class_instantiated_per_resolve(self, registry):
        before = Counter.instances
        registry.resolve("Counter::hit")
        registry.resolve("Counter::hit")
        assert Counter.instances == before + 2

    def test_registered_instance_used_as_is(self):
        reg = ControllerRegistry()
        instance = Counter()
        reg.register(instance, "Shared")
        assert reg.resolve("Shared::hit").__self__ is instance

    def test_component_namespace(self):
        reg = ControllerRegistry()
        assert reg.register(Counter, namespace="components") == "components.Counter"
        assert reg.resolve("Counter::hit")({"a": 1}) == {"a": 1}

    def test_dotted_import(self):
        reg = ControllerRegistry()
        assert reg.resolve("json.dumps")({"a": 1}) == '{"a": 1}'

    def test_callable_passthrough(self, registry):
        def handler():
            return "ok"

        assert registry.resolve(handler) is handler

    def test_unknown_class(self, registry):
        with pytest.raises(ClassNotFoundError):
            registry.resolve("Nope::hit")

    def test_missing_method(self, registry):
        with pytest.raises(MethodNotFoundError):
            registry.resolve("Counter::nope")

    def test_private_method(self, registry):
        with pytest.raises(MethodNotCallableError):
            registry.resolve("Counter::_private")

    def test_non_callable_member(self, registry):
        with pytest.raises(MethodNotCallableError):
            registry.resolve("Counter::size")

    @pytest.mark.parametrize("ref", ["", None, "justaword"])
    def test_unparseable(self, registry, ref):
        with pytest.raises(ControllerNotFoundError):
            registry.resolve(ref)

    def test_names(self, registry):
        registry.register(Counter(), "Other")
        assert registry.names() == ["Counter", "Other"]
        assert "Other" in registry


class TestInvoke:
    def test_capacity(self):
        assert positional_capacity(lambda a, b=1: None) == (1, 2)
        assert positional_capacity(lambda *args: None) == (0, None)

    def test_no_args_callable(self):
        assert invoke(lambda: "ok", {"a": 1}, {"m": 1}, "extra") == "ok"

    def test_trims_to_capacity(self):
        assert invoke(lambda p: p, {"a": 1}, {"m": 1}) == {"a": 1}

    def test_cuts_trailing_none(self):
        assert invoke(lambda *args: args, {"a": 1}, None, None) == ({"a": 1},)

    def test_keeps_inner_none(self):
        assert invoke(lambda *args: args, None, None, "x") == (None, None, "x")

    def test_pads_required_positionals(self):
        assert invoke(lambda p, m: (p, m), {"a": 1}) == ({"a": 1}, None)

    def test_all_none(self):
        assert invoke(lambda *args: args) == ()


class TestCaptureEcho:
    def test_collects_prints_and_restores_stdout(self):
        stdout = sys.stdout
        with capture_echo() as buffer:
            print("hello")
        assert buffer.getvalue() == "hello\n"
        assert sys.stdout is stdout

    def test_nested_captures_are_separate(self):
        stdout = sys.stdout
        with capture_echo() as outer:
            print("outer")
            with capture_echo() as inner:
                print("inner")
            print("outer again")
        assert inner.getvalue() == "inner\n"
        assert outer.getvalue() == "outer\nouter again\n"
        assert sys.stdout is stdout
