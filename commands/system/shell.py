"""Run a shell command on the host.

Restricted to the user IDs listed in ``owner_ids`` of the bot config.
"""

import asyncio
import logging

from bot_config import get_owner_ids
from plugins.schema import Command
from utils.message_chunks import split_message

SHELL_LIMITS = {"timeout": 30, "max_output": 12000}

logger = logging.getLogger("ferret.command.shell")


def sanitize_output(output, max_length=None):
    if not output:
        return ""
    cleaned = output.replace("\\", "\\\\").replace("`", "\\`").replace("@", "@\u200b")
    return cleaned[:max_length]


def format_output(stdout, stderr):
    limit = SHELL_LIMITS["max_output"]
    parts = []
    if stdout.strip():
        parts.append(f"Output:\n```\n{sanitize_output(stdout, limit)}\n```")
    if stderr.strip():
        parts.append(f"Error:\n```\n{sanitize_output(stderr, limit)}\n```")
    return "\n\n".join(parts) or "No output"


async def shell(message, args):
    user = getattr(message, "from_user", None)
    if user is None or user.id not in get_owner_ids():
        await message.reply("This command is restricted to bot owners.")
        return
    if not args:
        await message.reply("Please provide a command to run")
        return

    command = " ".join(args)
    timeout = SHELL_LIMITS["timeout"]
    logger.info("Executing shell command: %s", command)

    process = await asyncio.create_subprocess_shell(
        command,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.communicate()
        await message.reply(f"Command timed out after {timeout}s")
        return

    status = "Success" if process.returncode == 0 else "Failed"
    report = "\n".join([
        f"Shell Command {status}",
        f"Command: `{sanitize_output(command, SHELL_LIMITS['max_output'])}`",
        f"Exit Code: {process.returncode}",
        "",
        format_output(
            stdout.decode(errors="replace"),
            stderr.decode(errors="replace"),
        ),
    ])
    for chunk in split_message(report):
        await message.reply(chunk)


COMMAND = Command(
    name="shell",
    description=(
        "Executes shell commands on the host. Owner only: this can run "
        "arbitrary system commands."
    ),
    execute=shell,
)
