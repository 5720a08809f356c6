"""Repeat the arguments back to the sender."""

from plugins.schema import Command

# Substrings that would let the bot ping other users
BLOCKED = ["@"]


async def repeat(message, args):
    if not args:
        await message.reply("Please provide a message content...")
        return

    content = " ".join(args)
    if any(token in content for token in BLOCKED):
        await message.reply("You can't mention everyone or anyone else.")
        return

    await message.reply(content)


echo = Command(name="echo", description="Repeats your message content", execute=repeat)
