"""Tests for plugins.loader — discovery walk, command shape, duplicate policy."""

import json

import pytest

from conftest import REPO_COMMANDS_DIR
from plugins.converter import catalog_from_json
from plugins.loader import (
    discover_commands,
    find_commands,
    handle_request,
    iter_plugin_files,
    module_name_for,
)
from plugins.schema import Command, DiscoveryError, DuplicateCommandError, is_command

GOOD_PING = """\
from plugins.schema import Command


async def ping(message, args):
    await message.reply("Pong!")


COMMAND = Command(name="ping", description="Pong", execute=ping)
"""

GOOD_MAPPING = """\
def run(message, args):
    return " ".join(args)


COMMAND = {"name": "join", "description": "Join args", "execute": run}
"""

GOOD_NAMED = """\
from plugins.schema import Command


def upper(message, args):
    return [a.upper() for a in args]


shout = Command(name="shout", description="Upper-case", execute=upper)
"""

SYNTAX_ERROR = "def broken(:\n    pass\n"

NO_COMMAND = """\
VALUE = {"a": 1}


def helper():
    return VALUE
"""

RAISES_ON_IMPORT = """\
raise RuntimeError("plugin exploded")
"""

EXITS_ON_IMPORT = """\
import sys
sys.exit(3)
"""


def _ping_with_reply(text: str) -> str:
    return GOOD_PING.replace("Pong!", text)


# =====================================================================
# File enumeration
# =====================================================================

class TestIterPluginFiles:

    def test_recursive_and_sorted(self, plugin_tree):
        plugin_tree("b/two.py", NO_COMMAND)
        plugin_tree("a/one.py", NO_COMMAND)
        plugin_tree("zero.py", NO_COMMAND)
        plugin_tree("a/nested/deep.py", NO_COMMAND)

        files = [p.relative_to(plugin_tree.root).as_posix() for p in iter_plugin_files(plugin_tree.root)]
        assert files == ["zero.py", "a/one.py", "a/nested/deep.py", "b/two.py"]

    def test_skips_private_hidden_and_non_python(self, plugin_tree):
        plugin_tree("_private.py", GOOD_PING)
        plugin_tree("_internal/cmd.py", GOOD_PING)
        plugin_tree(".hidden/cmd.py", GOOD_PING)
        plugin_tree("notes.txt", "not python")
        plugin_tree("real.py", GOOD_PING)

        files = [p.name for p in iter_plugin_files(plugin_tree.root)]
        assert files == ["real.py"]

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(DiscoveryError):
            iter_plugin_files(tmp_path / "does-not-exist")

    def test_module_names_are_unique_per_path(self, plugin_tree):
        a = plugin_tree("a/ping.py", GOOD_PING)
        b = plugin_tree("b/ping.py", GOOD_PING)
        assert module_name_for(a, plugin_tree.root) == "ferret_plugins.a.ping"
        assert module_name_for(b, plugin_tree.root) == "ferret_plugins.b.ping"


# =====================================================================
# Command shape
# =====================================================================

class TestCommandShape:

    def test_dataclass_and_mapping(self):
        def run(message, args):
            return None

        assert is_command(Command(name="a", description="", execute=run))
        assert is_command({"name": "a", "description": "d", "execute": run})

    def test_rejects_incomplete_values(self):
        def no_params():
            return None

        assert not is_command(None)
        assert not is_command({"name": "a", "description": "d"})
        assert not is_command({"name": "", "description": "d", "execute": print})
        assert not is_command({"name": "a", "description": 3, "execute": lambda m: m})
        assert not is_command({"name": "a", "description": "d", "execute": no_params})
        assert not is_command(Command)

    def test_default_export_wins(self):
        def run(message):
            return None

        default = Command(name="main", description="", execute=run)
        other = Command(name="other", description="", execute=run)
        assert find_commands({"COMMAND": default, "other": other}) == [("COMMAND", default)]

    def test_named_exports_when_no_default(self):
        def run(message):
            return None

        first = Command(name="first", description="", execute=run)
        second = {"name": "second", "description": "", "execute": run}
        found = find_commands({"first": first, "helper": run, "second": second, "COMMAND": None})
        assert found == [("first", first), ("second", second)]


# =====================================================================
# Discovery pass
# =====================================================================

class TestDiscoverCommands:

    def test_good_and_malformed_files(self, plugin_tree):
        plugin_tree("general/ping.py", GOOD_PING)
        plugin_tree("general/join.py", GOOD_MAPPING)
        plugin_tree("text/shout.py", GOOD_NAMED)
        plugin_tree("broken/syntax.py", SYNTAX_ERROR)
        plugin_tree("broken/empty.py", NO_COMMAND)
        plugin_tree("broken/boom.py", RAISES_ON_IMPORT)
        plugin_tree("broken/quits.py", EXITS_ON_IMPORT)

        report = discover_commands(plugin_tree.root)

        assert sorted(report.commands) == ["join", "ping", "shout"]
        assert sorted(s.path for s in report.skipped) == [
            "broken/boom.py", "broken/empty.py", "broken/quits.py", "broken/syntax.py",
        ]
        assert len(report.files) == 7
        assert report.duration_ms >= 0

    def test_descriptor_contents(self, plugin_tree):
        plugin_tree("general/ping.py", GOOD_PING)
        report = discover_commands(plugin_tree.root)

        descriptor = report.commands["ping"]
        assert descriptor.description == "Pong"
        assert descriptor.source_location == "general/ping.py"
        assert descriptor.is_async is True
        assert descriptor.body_source.startswith("async def ping(message,args):")
        assert descriptor.bindings["Command"] == "from plugins.schema import Command as Command"

    def test_several_commands_in_one_file(self, plugin_tree):
        plugin_tree("multi.py", GOOD_NAMED + '\n\nwhisper = {"name": "whisper", "description": "", "execute": upper}\n')
        report = discover_commands(plugin_tree.root)
        assert sorted(report.commands) == ["shout", "whisper"]

    def test_all_limits_exports(self, plugin_tree):
        plugin_tree("limited.py", GOOD_NAMED + '\n__all__ = ["upper"]\n')
        report = discover_commands(plugin_tree.root)
        assert report.commands == {}
        assert report.skipped[0].reason == "no command export found"

    def test_empty_tree(self, plugin_tree):
        report = discover_commands(plugin_tree.root)
        assert report.commands == {}
        assert report.files == []

    def test_missing_root_aborts(self, tmp_path):
        with pytest.raises(DiscoveryError):
            discover_commands(tmp_path / "missing")

    def test_invalid_policy(self, plugin_tree):
        with pytest.raises(DiscoveryError, match="duplicate policy"):
            discover_commands(plugin_tree.root, duplicate_policy="newest")

    def test_repository_commands_load_cleanly(self):
        report = discover_commands(REPO_COMMANDS_DIR)
        assert sorted(report.commands) == ["about", "buffer", "echo", "ping", "poll", "shell"]
        assert report.skipped == []


class TestDuplicatePolicy:

    @pytest.fixture()
    def duplicate_tree(self, plugin_tree):
        plugin_tree("b/ping.py", _ping_with_reply("from b"))
        plugin_tree("a/ping.py", _ping_with_reply("from a"))
        return plugin_tree.root

    def test_last_processed_file_wins(self, duplicate_tree):
        report = discover_commands(duplicate_tree)
        ping_files = [f for f in report.files if f.endswith("ping.py")]
        assert report.commands["ping"].source_location == ping_files[-1]
        assert "from b" in report.commands["ping"].body_source

    def test_first_wins(self, duplicate_tree):
        report = discover_commands(duplicate_tree, duplicate_policy="first_wins")
        ping_files = [f for f in report.files if f.endswith("ping.py")]
        assert report.commands["ping"].source_location == ping_files[0]

    def test_error_policy(self, duplicate_tree):
        with pytest.raises(DuplicateCommandError):
            discover_commands(duplicate_tree, duplicate_policy="error")


# =====================================================================
# Worker entry point
# =====================================================================

class TestHandleRequest:

    def test_success_response(self, plugin_tree):
        plugin_tree("general/ping.py", GOOD_PING)
        plugin_tree("broken/empty.py", NO_COMMAND)

        response = handle_request({
            "command": "load_commands",
            "commands_dir": str(plugin_tree.root),
            "duplicate_policy": "last_wins",
        })

        assert response["success"] is True
        json.loads(response["commands"])
        assert list(catalog_from_json(response["commands"])) == ["ping"]
        assert response["files"] == ["broken/empty.py", "general/ping.py"]
        assert response["skipped"] == [{"path": "broken/empty.py", "reason": "no command export found"}]

    def test_unknown_verb(self):
        response = handle_request({"command": "reload_everything"})
        assert response["success"] is False
        assert "reload_everything" in response["error"]

    def test_not_a_mapping(self):
        assert handle_request("load_commands")["success"] is False

    def test_missing_directory(self, tmp_path):
        response = handle_request({"command": "load_commands", "commands_dir": str(tmp_path / "nope")})
        assert response == {"success": False, "error": f"Commands directory not found: {(tmp_path / 'nope').resolve()}"}
