"""Telegram front end for Ferret Bot.

Every text message starting with the configured prefix is treated as a
command invocation and dispatched to the execution engine; everything else
is ignored.

Usage:
    ferret                  # diagnostics server + bot
    ferret --no-server      # bot only
"""

import logging
from typing import Any

from aiogram import Bot, Dispatcher, F, Router
from aiogram.types import Message

import metrics
import shared_state
from bot_config import get_bot_token, get_disabled_commands, get_prefix
from plugins.catalog_store import CatalogStore
from plugins.executor import ExecutionResult, execute_command
from plugins.schema import CommandNotFound

logger = logging.getLogger("ferret.telegram")

router = Router()


def parse_command(text: str | None, prefix: str) -> tuple[str, list[str]] | None:
    """``"/echo a b"`` -> ``("echo", ["a", "b"])``; None for non-commands.

    A Telegram ``@botname`` suffix on the command token is dropped so group
    chats can address the bot explicitly.
    """
    if not text or not text.startswith(prefix):
        return None

    parts = text[len(prefix):].split()
    if not parts:
        return None

    name = parts[0].split("@", 1)[0]
    if not name:
        return None
    return name, parts[1:]


def _is_bot_author(message: Any) -> bool:
    author = getattr(message, "from_user", None)
    return bool(author is not None and getattr(author, "is_bot", False))


async def handle_command_message(
    message: Any,
    store: CatalogStore | None = None,
    prefix: str | None = None,
) -> ExecutionResult | None:
    """Dispatch one chat message; returns the result when a command ran."""
    if _is_bot_author(message):
        return None

    parsed = parse_command(getattr(message, "text", None), prefix or get_prefix())
    if parsed is None:
        return None
    name, args = parsed

    if store is None:
        store = shared_state.commands

    if name in get_disabled_commands():
        logger.info("Ignoring disabled command %s", name)
        await message.reply("Command is disabled")
        return None

    try:
        return await execute_command(store, name, message, args)
    except CommandNotFound:
        logger.info("Unknown command: %s", name)
        metrics.record_unknown_command()
        await message.reply("Unknown command")
        return None


@router.message(F.text)
async def handle_text(message: Message) -> None:
    await handle_command_message(message)


async def run_telegram_bot_async() -> None:
    """Start polling in the running event loop."""
    token = get_bot_token()
    if not token:
        logger.error(
            "Bot token not configured. Set FERRET_BOT_TOKEN or add to "
            '~/.ferret-bot/config.json: {"bot": {"bot_token": "YOUR_TOKEN"}}'
        )
        return

    bot = Bot(token=token)
    dp = Dispatcher()
    dp.include_router(router)

    logger.info("Starting Telegram bot with %d command(s)...", len(shared_state.commands))
    print("  Telegram bot started", flush=True)

    try:
        await dp.start_polling(bot, allowed_updates=["message"])
    finally:
        await bot.session.close()

