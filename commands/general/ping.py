"""Liveness check."""

from plugins.schema import Command


async def ping(message, args):
    await message.reply("Pong!")


COMMAND = Command(
    name="ping",
    description="Ping the bot to check if it's online.",
    execute=ping,
)
