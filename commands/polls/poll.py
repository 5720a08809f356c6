"""Native Telegram poll.

    /poll Favourite colour? | red | green | blue
"""

import logging

from plugins.schema import Command

POLL_LIMITS = {"min_options": 2, "max_options": 10}
POLL_ERRORS = {
    "missing_question": "Please provide a question: /poll Question | option 1 | option 2",
    "not_enough_options": "A poll needs at least 2 options separated by |",
    "too_many_options": "A poll can have at most 10 options",
}

logger = logging.getLogger("ferret.command.poll")


def parse_poll_args(args):
    """Split ``question | a | b`` into (question, options, error)."""
    parts = [item.strip() for item in " ".join(args).split("|")]
    question = parts[0]
    options = [option for option in parts[1:] if option]

    if not question:
        return None, [], POLL_ERRORS["missing_question"]
    if len(options) < POLL_LIMITS["min_options"]:
        return None, [], POLL_ERRORS["not_enough_options"]
    if len(options) > POLL_LIMITS["max_options"]:
        return None, [], POLL_ERRORS["too_many_options"]
    return question, options, None


async def poll(message, args):
    question, options, error = parse_poll_args(args)
    if error:
        await message.reply(error)
        return

    await message.answer_poll(question=question, options=options, is_anonymous=False)
    logger.info("Created poll %r with %d option(s)", question, len(options))


COMMAND = Command(
    name="poll",
    description="Creates a poll with options (up to 10)",
    execute=poll,
)
