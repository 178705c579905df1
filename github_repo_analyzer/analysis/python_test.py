"""Unit tests for the Python source scanner."""

from textwrap import dedent

import pytest

from ..errors import ParseError
from ..models import ItemKind, Visibility
from .python import PythonParser, base_name, split_bases

SOURCE = dedent('''\
    from typing import Protocol


    class Greeter(Protocol):
        def greet(self, name: str) -> Greeting: ...


    class Loud(Base, metaclass=Meta):
        """Docstring mentioning class Fake: nothing."""

        volume: Level

        def greet(self, name):
            def helper():
                pass
            return Greeting(name.upper())

        def _quiet(self):
            pass


    def make() -> Loud:
        return Loud()
    ''')


@pytest.fixture
def items():
    parsed = PythonParser().parse("src/pkg/app.py", SOURCE)
    return {item.qualified_name: item for item in parsed.items}


def describe_PythonParser():

    def describe_module_path():
        def it_drops_src_and_the_extension():
            assert PythonParser().module_path("src/pkg/app.py") == "pkg.app"

        def it_maps_package_init_to_the_package():
            assert PythonParser().module_path("pkg/__init__.py") == "pkg"

        def it_handles_top_level_files():
            assert PythonParser().module_path("setup.py") == "setup"

    def it_finds_classes_functions_and_methods(items):
        assert list(items) == [
            "pkg.app",
            "pkg.app.Greeter",
            "pkg.app.Greeter.greet",
            "pkg.app.Loud",
            "pkg.app.Loud.greet",
            "pkg.app.Loud._quiet",
            "pkg.app.make",
        ]
        assert items["pkg.app"].kind is ItemKind.MODULE
        assert items["pkg.app.Loud.greet"].kind is ItemKind.METHOD
        assert items["pkg.app.make"].kind is ItemKind.FUNCTION

    def it_treats_protocols_as_traits(items):
        greeter = items["pkg.app.Greeter"]
        assert greeter.kind is ItemKind.TRAIT
        assert greeter.implements == ()

    def it_records_base_classes_as_implemented(items):
        loud = items["pkg.app.Loud"]
        assert loud.kind is ItemKind.TYPE
        assert loud.implements == ("Base",)
        assert loud.references == ("Meta", "Level")
        assert loud.signature == "class Loud(Base, metaclass=Meta)"

    def it_tracks_line_spans(items):
        assert (items["pkg.app.Greeter"].start_line, items["pkg.app.Greeter"].end_line) == (4, 5)
        assert (items["pkg.app.Loud.greet"].start_line, items["pkg.app.Loud.greet"].end_line) == (13, 16)
        assert (items["pkg.app.Loud"].start_line, items["pkg.app.Loud"].end_line) == (8, 19)

    def it_collects_references_from_bodies_but_not_nested_defs(items):
        assert items["pkg.app.Loud.greet"].references == ("Greeting",)
        assert items["pkg.app.make"].references == ("Loud",)
        assert "pkg.app.Loud.greet.helper" not in items

    def it_ignores_declarations_inside_strings(items):
        assert not any(name.endswith("Fake") for name in items)

    def it_marks_underscore_names_private(items):
        assert items["pkg.app.Loud._quiet"].visibility is Visibility.PRIVATE
        assert items["pkg.app.Loud.greet"].visibility is Visibility.PUBLIC

    def it_keeps_the_signature_without_the_body(items):
        assert items["pkg.app.Greeter.greet"].signature == "def greet(self, name: str) -> Greeting"

    def it_treats_abc_classes_as_traits():
        parsed = PythonParser().parse("store.py", dedent("""\
            class Store(metaclass=ABCMeta):
                pass


            class Repo(abc.ABC):
                pass
            """))
        kinds = {item.name: item.kind for item in parsed.items}
        assert kinds["Store"] is ItemKind.TRAIT
        assert kinds["Repo"] is ItemKind.TRAIT

    def it_reads_async_functions():
        parsed = PythonParser().parse("client.py", "async def fetch(url: str) -> Response:\n    pass\n")
        fetch = parsed.items[1]
        assert fetch.kind is ItemKind.FUNCTION
        assert fetch.references == ("Response",)

    def it_keeps_interface_bases_as_dependencies():
        parsed = PythonParser().parse("readers.py", "class Reader(Source, Protocol):\n    pass\n")
        reader = parsed.items[1]
        assert reader.kind is ItemKind.TRAIT
        assert reader.implements == ()
        assert reader.references == ("Source",)

    def it_merges_property_setters_and_overloads():
        parsed = PythonParser().parse("shapes.py", dedent("""\
            class Circle:
                @property
                def radius(self) -> Length:
                    return self._r

                @radius.setter
                def radius(self, value: Measure):
                    self._r = value

            @overload
            def scale(x: int) -> int: ...
            @overload
            def scale(x: float) -> float: ...
            def scale(x):
                return x
            """))
        items = {item.qualified_name: item for item in parsed.items}

        assert parsed.warnings == []
        radius = items["shapes.Circle.radius"]
        assert (radius.start_line, radius.end_line) == (3, 8)
        assert radius.references == ("Length", "Measure")
        assert (items["shapes.scale"].start_line, items["shapes.scale"].end_line) == (11, 15)

    def it_merges_conditional_alternatives():
        parsed = PythonParser().parse("compat.py", dedent("""\
            import sys

            if sys.platform == "win32":
                def home() -> WindowsPath:
                    pass
            else:
                def home() -> PosixPath:
                    pass
            """))
        home = {item.name: item for item in parsed.items}["home"]
        assert parsed.warnings == []
        assert home.references == ("WindowsPath", "PosixPath")

    def it_warns_about_plain_redefinitions():
        parsed = PythonParser().parse("dup.py", "def f():\n    pass\n\n\ndef f():\n    pass\n")
        assert parsed.warnings == ["duplicate function dup.f at line 5 ignored"]

    def it_counts_test_functions():
        parsed = PythonParser().parse("tests/test_app.py", dedent("""\
            def test_runs():
                pass


            class TestApp:
                def test_method(self):
                    pass

                def helper(self):
                    pass
            """))
        assert parsed.tests == 2

    def it_collects_module_constants():
        parsed = PythonParser().parse("config.py", dedent("""\
            DEFAULT_TIMEOUT = 30
            API_BASE: str = "https://api.example.com"
            logger = get_logger()
            if DEBUG:
                LEVEL = "debug"


            class Config:
                RETRIES = 3


            def f():
                LOCAL = 1
            """))
        constants = {c.name: c for c in parsed.constants}

        assert list(constants) == ["DEFAULT_TIMEOUT", "API_BASE", "LEVEL"]
        assert (constants["DEFAULT_TIMEOUT"].value, constants["DEFAULT_TIMEOUT"].line) == ("30", 1)
        assert constants["API_BASE"].type == "str"
        assert constants["API_BASE"].value == '"https://api.example.com"'
        assert constants["API_BASE"].visibility is Visibility.PUBLIC

    @pytest.mark.parametrize("text, message", [
        ('"""never closed\nclass A:\n    pass\n', "string literal"),
        ("x = (1,\n", "unbalanced"),
    ])
    def it_raises_parse_error_on_malformed_source(text, message):
        with pytest.raises(ParseError, match=message):
            PythonParser().parse("bad.py", text)


def describe_split_bases():
    def it_splits_on_top_level_commas():
        assert split_bases("Generic[K, V], Base, metaclass=Meta") == ["Generic[K, V]", "Base", "metaclass=Meta"]


def describe_base_name():
    def it_strips_modules_and_subscripts():
        assert base_name("typing.Generic[T]") == "Generic"
        assert base_name("abc.ABC") == "ABC"
