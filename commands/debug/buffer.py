"""Dump the catalog store's append-only log."""

import logging

from plugins.schema import Command
from utils.size_format import format_size

# Telegram rejects messages over 4096 characters
LIMITS = {"chunk": 3800}

logger = logging.getLogger("ferret.command.buffer")


async def show_buffer(message, args):
    import shared_state

    store = shared_state.commands
    decimal = "decimal" in args
    hex_log = store.export_log_hex()

    await message.answer(
        f"Buffer ({format_size(store.bytes_written, decimal=decimal)} of "
        f"{format_size(store.capacity, decimal=decimal)}, {len(store)} command(s)):"
    )
    step = LIMITS["chunk"]
    for start in range(0, len(hex_log), step):
        await message.answer(f"```\n{hex_log[start:start + step]}\n```", parse_mode="Markdown")
    logger.debug("Sent %d byte(s) of catalog log", store.bytes_written)


COMMAND = Command(
    name="buffer",
    description="Debug view of the command catalog's byte log",
    execute=show_buffer,
)
