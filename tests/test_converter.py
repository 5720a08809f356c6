"""Tests for plugins.converter — source capture, minifier, bindings, catalog JSON."""

import ast
import json

import pytest

from plugins.converter import (
    catalog_from_json,
    catalog_to_json,
    command_to_descriptor,
    extract_bindings,
    function_source,
    minify_source,
)
from plugins.loader import load_module_exports
from plugins.schema import (
    Command,
    CommandDescriptor,
    CommandShapeError,
    DescriptorValidationError,
    SynthesisError,
)

double = lambda message, args: message * 2  # noqa: E731


def _sample(message, args):
    return message


async def _sample_async(message, args):
    return message


# =====================================================================
# Minifier
# =====================================================================

class TestMinifySource:

    def test_drops_comments_and_blank_lines(self):
        source = "def f(a, b):\n    # add them\n\n    return a + b  # done\n"
        assert minify_source(source) == "def f(a,b):\n return a + b"

    def test_nested_blocks_use_one_space_per_level(self):
        source = (
            "def f(items):\n"
            "    for item in items:\n"
            "        if item:\n"
            "            return item\n"
            "    return None\n"
        )
        assert minify_source(source) == (
            "def f(items):\n"
            " for item in items:\n"
            "  if item:\n"
            "   return item\n"
            " return None"
        )

    def test_strings_are_copied_verbatim(self):
        assert minify_source('x = "a  #  b"\n') == 'x = "a  #  b"'

    def test_fstrings_are_copied_verbatim(self):
        source = 'msg = f"{name}  has   {count:>3} item(s)"\n'
        assert minify_source(source) == 'msg = f"{name}  has   {count:>3} item(s)"'

    def test_continuation_lines_are_joined(self):
        source = "total = sum([\n    1,\n    2,\n])\n"
        assert minify_source(source) == "total = sum([1,2,])"

    def test_output_still_parses(self):
        source = '''
            async def handler(message, args):
                """Docstring stays."""
                data = {"a": [1, 2, 3], "b": (4, 5)}
                if not args:
                    await message.reply(f"usage: {data['a']!r}")
                    return
                while args:
                    args.pop()
                return [x for x in data["a"] if x > 1]
        '''
        minified = minify_source(source)
        ast.parse(minified)
        assert "#" not in minified
        assert "\n\n" not in minified

    def test_untokenizable_source_raises(self):
        with pytest.raises(SynthesisError):
            minify_source("x = (1,\n")


# =====================================================================
# Source capture
# =====================================================================

class TestFunctionSource:

    def test_plain_function(self):
        text = function_source(_sample)
        assert text.startswith("def _sample(message, args):")

    def test_lambda_is_cut_from_its_line(self):
        assert function_source(double) == "lambda message, args: message * 2"

    def test_missing_source_raises(self):
        namespace = {}
        exec("def generated(message, args):\n    return 1\n", namespace)
        with pytest.raises(SynthesisError):
            function_source(namespace["generated"])


# =====================================================================
# Bindings
# =====================================================================

PLUGIN_WITH_BINDINGS = """\
import json
from json import dumps

from plugins.schema import Command

SETTINGS = {"greeting": "hi", "count": 2}
WORDS = ("a", "b")
LIMIT = 5
NAME = "ignored"
shout = lambda text: text.upper()


def helper(text):
    # repeat it
    return text * SETTINGS["count"]


async def run(message, args):
    await message.reply(helper(SETTINGS["greeting"]))


COMMAND = Command(name="bind", description="binding test", execute=run)
"""


class TestExtractBindings:

    @pytest.fixture()
    def exports(self, plugin_tree):
        path = plugin_tree("bind.py", PLUGIN_WITH_BINDINGS)
        return load_module_exports(path, plugin_tree.root)

    def test_binding_kinds(self, exports):
        module_name, values = exports
        bindings = extract_bindings(values, {"COMMAND"}, module_name)

        assert bindings["SETTINGS"] == '{"greeting":"hi","count":2}'
        assert bindings["WORDS"] == '["a","b"]'
        assert bindings["helper"] == 'def helper(text):\n return text * SETTINGS["count"]'
        assert bindings["shout"] == "shout=lambda text:text.upper()"
        assert bindings["json"] == "import json as json"
        assert bindings["dumps"] == "from json import dumps as dumps"
        assert bindings["Command"] == "from plugins.schema import Command as Command"

    def test_primitives_and_command_are_skipped(self, exports):
        module_name, values = exports
        bindings = extract_bindings(values, {"COMMAND"}, module_name)
        assert "LIMIT" not in bindings
        assert "NAME" not in bindings
        assert "COMMAND" not in bindings

    def test_descriptor_from_module(self, exports):
        module_name, values = exports
        descriptor = command_to_descriptor(
            values["COMMAND"], values, "COMMAND", module_name, "bind.py"
        )
        assert descriptor.name == "bind"
        assert descriptor.description == "binding test"
        assert descriptor.is_async is True
        assert descriptor.source_location == "bind.py"
        assert descriptor.body_source.startswith("async def run(message,args):")
        assert "SETTINGS" in descriptor.bindings


# =====================================================================
# Descriptors
# =====================================================================

class TestCommandToDescriptor:

    def test_sync_command(self):
        command = Command(name="sync", description="", execute=_sample)
        descriptor = command_to_descriptor(command, {}, "COMMAND", __name__)
        assert descriptor.is_async is False
        assert descriptor.body_source == "def _sample(message,args):\n return message"

    def test_mapping_command(self):
        command = {"name": "mapped", "description": "d", "execute": _sample_async}
        descriptor = command_to_descriptor(command, {}, "COMMAND", __name__)
        assert descriptor.name == "mapped"
        assert descriptor.is_async is True

    def test_bad_name_is_a_shape_error(self):
        command = Command(name="two words", description="", execute=_sample)
        with pytest.raises(CommandShapeError):
            command_to_descriptor(command, {}, "COMMAND", __name__)

    def test_unavailable_source_is_a_synthesis_error(self):
        namespace = {}
        exec("def generated(message, args):\n    return 1\n", namespace)
        command = Command(name="gen", description="", execute=namespace["generated"])
        with pytest.raises(SynthesisError):
            command_to_descriptor(command, {}, "COMMAND", __name__)


# =====================================================================
# Catalog JSON
# =====================================================================

class TestCatalogJson:

    def test_round_trip(self):
        catalog = {
            "ping": CommandDescriptor(
                name="ping",
                description="Pong",
                body_source="async def p(m,a):\n await m.reply('Pong!')",
                bindings={"X": "[1,2]"},
                is_async=True,
                source_location="general/ping.py",
            )
        }
        assert catalog_from_json(catalog_to_json(catalog)) == catalog

    def test_malformed_entries_are_dropped(self):
        text = json.dumps({
            "good": {"name": "good", "description": "", "body_source": "def f(m,a):pass"},
            "bad": {"name": "has space", "description": "", "body_source": "x"},
            "worse": "not a dict",
        })
        catalog = catalog_from_json(text)
        assert list(catalog) == ["good"]

    def test_non_object_raises(self):
        with pytest.raises(DescriptorValidationError):
            catalog_from_json("[1, 2]")
