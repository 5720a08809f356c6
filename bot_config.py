"""Bot configuration for Ferret Bot.

Settings live in the ``"bot"`` section of ``~/.ferret-bot/config.json``.
A missing or unreadable file yields the defaults below.
"""

import json
import logging
import os
from pathlib import Path

from plugins.schema import DUPLICATE_POLICIES

logger = logging.getLogger("ferret.config")

CONFIG_DIR = Path.home() / ".ferret-bot"
CONFIG_FILE = CONFIG_DIR / "config.json"

DEFAULT_PREFIX = "/"
DEFAULT_COMMANDS_DIR = Path(__file__).resolve().parent / "commands"
DEFAULT_DUPLICATE_POLICY = "last_wins"
DEFAULT_STORE_INITIAL_SIZE = 1024


def _read_config_file() -> dict:
    if not CONFIG_FILE.exists():
        return {}
    try:
        with open(CONFIG_FILE, "r", encoding="utf-8") as f:
            config = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Could not read %s: %s", CONFIG_FILE, e)
        return {}
    return config if isinstance(config, dict) else {}


def get_bot_config() -> dict:
    """Read the bot section of config.json."""
    section = _read_config_file().get("bot", {})
    return section if isinstance(section, dict) else {}


def save_bot_config(bot_config: dict) -> None:
    """Write the bot section back, keeping any other sections intact."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    config = _read_config_file()
    config["bot"] = bot_config

    with open(CONFIG_FILE, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2)


def get_bot_token() -> str | None:
    """The Telegram token; ``FERRET_BOT_TOKEN`` overrides the file."""
    return os.environ.get("FERRET_BOT_TOKEN") or get_bot_config().get("bot_token")


def get_prefix() -> str:
    prefix = get_bot_config().get("prefix")
    return prefix if isinstance(prefix, str) and prefix else DEFAULT_PREFIX


def get_commands_dir() -> Path:
    configured = get_bot_config().get("commands_dir")
    if configured:
        return Path(configured).expanduser()
    return DEFAULT_COMMANDS_DIR


def get_duplicate_policy() -> str:
    policy = get_bot_config().get("duplicate_policy", DEFAULT_DUPLICATE_POLICY)
    if policy not in DUPLICATE_POLICIES:
        logger.warning(
            "Invalid duplicate_policy %r in config; using %s", policy, DEFAULT_DUPLICATE_POLICY
        )
        return DEFAULT_DUPLICATE_POLICY
    return policy


def get_store_initial_size() -> int:
    """Initial catalog log capacity in bytes."""
    value = get_bot_config().get("store_initial_size", DEFAULT_STORE_INITIAL_SIZE)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return DEFAULT_STORE_INITIAL_SIZE
    return value


def get_disabled_commands() -> list[str]:
    """Command names that reply "Command is disabled" instead of running."""
    return [str(name) for name in get_bot_config().get("disabled_commands", [])]


def get_owner_ids() -> list[int]:
    """Telegram user IDs allowed to run owner-only commands."""
    owners = []
    for value in get_bot_config().get("owner_ids", []):
        try:
            owners.append(int(value))
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid owner id %r", value)
    return owners
