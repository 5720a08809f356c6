"""Bot information, exported as a plain mapping."""

ABOUT = {
    "title": "About Ferret Bot",
    "lines": [
        "Chat bot with hot-pluggable Python commands.",
        "Commands are discovered once at startup and rebuilt from source on every call.",
    ],
}


async def about(message, args):
    import shared_state

    text = "\n".join([ABOUT["title"], "", *ABOUT["lines"]])
    text += f"\n\nCommands loaded: {len(shared_state.commands)}"
    await message.answer(text)


COMMAND = {
    "name": "about",
    "description": "Displays information about the bot.",
    "execute": about,
}
