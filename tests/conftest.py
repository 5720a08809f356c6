"""Shared fixtures for the Ferret Bot test suite."""

import json
import textwrap
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest


# ---------------------------------------------------------------------------
# Temporary config directory so no test touches the real ~/.ferret-bot
# ---------------------------------------------------------------------------

@pytest.fixture()
def ferret_home(tmp_path, monkeypatch):
    """Point bot_config at a temporary ~/.ferret-bot.

    Returns a dict with the paths and a ``write_config(section)`` helper that
    stores *section* as the ``"bot"`` part of config.json.
    """
    import bot_config

    config_dir = tmp_path / ".ferret-bot"
    config_dir.mkdir()
    config_file = config_dir / "config.json"

    monkeypatch.setattr(bot_config, "CONFIG_DIR", config_dir)
    monkeypatch.setattr(bot_config, "CONFIG_FILE", config_file)
    monkeypatch.delenv("FERRET_BOT_TOKEN", raising=False)

    def write_config(section: dict) -> None:
        config_file.write_text(json.dumps({"bot": section}), encoding="utf-8")

    return {
        "root": tmp_path,
        "config_dir": config_dir,
        "config_file": config_file,
        "write_config": write_config,
    }


# ---------------------------------------------------------------------------
# Plugin trees
# ---------------------------------------------------------------------------

@pytest.fixture()
def plugin_tree(tmp_path):
    """Return ``write(relative_path, source)`` that builds a commands dir.

    The source is dedented; the commands root is available as
    ``write.root``.
    """
    root = tmp_path / "commands"
    root.mkdir()

    def write(relative_path: str, source: str) -> Path:
        path = root / relative_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source), encoding="utf-8")
        return path

    write.root = root
    return write


REPO_COMMANDS_DIR = Path(__file__).resolve().parent.parent / "commands"


# ---------------------------------------------------------------------------
# Fake chat messages
# ---------------------------------------------------------------------------

@dataclass
class FakeUser:
    id: int = 1001
    is_bot: bool = False
    username: str = "tester"


@dataclass
class FakeMessage:
    """Stands in for aiogram's Message; records everything the bot sends."""

    text: str = ""
    from_user: FakeUser = field(default_factory=FakeUser)
    replies: list[str] = field(default_factory=list)
    answers: list[str] = field(default_factory=list)
    polls: list[dict] = field(default_factory=list)

    async def reply(self, text: str, **kwargs: Any) -> "FakeMessage":
        self.replies.append(text)
        return self

    async def answer(self, text: str, **kwargs: Any) -> "FakeMessage":
        self.answers.append(text)
        return self

    async def answer_poll(self, question: str, options: list[str], **kwargs: Any) -> "FakeMessage":
        self.polls.append({"question": question, "options": list(options), **kwargs})
        return self


@pytest.fixture()
def make_message():
    def _make(text: str = "", user_id: int = 1001, is_bot: bool = False) -> FakeMessage:
        return FakeMessage(text=text, from_user=FakeUser(id=user_id, is_bot=is_bot))
    return _make


# ---------------------------------------------------------------------------
# Process-wide state
# ---------------------------------------------------------------------------

@pytest.fixture()
def fresh_store(monkeypatch):
    """Swap shared_state.commands for an empty store."""
    import shared_state
    from plugins.catalog_store import CatalogStore

    store = CatalogStore()
    monkeypatch.setattr(shared_state, "commands", store)
    return store


@pytest.fixture(autouse=True)
def _reset_metrics():
    import metrics
    metrics.reset()
    yield
    metrics.reset()
