"""Ferret Bot entry point and diagnostics server.

Startup runs one discovery pass in a worker process, fills the catalog
store, then runs the Telegram bot and (unless ``--no-server``) a small
FastAPI app that exposes the catalog and metrics.
"""

import asyncio
import logging
import sys
import time
from pathlib import Path

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
import uvicorn

import metrics
import shared_state
from bot_config import get_commands_dir, get_duplicate_policy
from logging_config import setup_logging
from plugins.channel import load_commands
from routes import catalog_router
from utils.size_format import format_size

logger = logging.getLogger("ferret.server")

app = FastAPI(title="Ferret Bot")
app.include_router(catalog_router)


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "commands": len(shared_state.commands),
        "uptime_seconds": round(time.time() - shared_state.started_at, 3),
    }


@app.get("/metrics", response_class=PlainTextResponse)
async def metrics_endpoint():
    return metrics.get_metrics_text()


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------

async def load_catalog(commands_dir: Path | str | None = None) -> int:
    """Run the discovery pass and fill ``shared_state.commands``."""
    commands_dir = Path(commands_dir) if commands_dir else get_commands_dir()
    result = await load_commands(
        shared_state.commands, commands_dir, get_duplicate_policy()
    )
    shared_state.commands_dir = str(commands_dir)
    shared_state.discovery_files = result.files
    shared_state.discovery_skipped = result.skipped
    return len(result.catalog)


def _get_version() -> str:
    try:
        from importlib.metadata import version as pkg_version
        return pkg_version("ferret-bot")
    except Exception:
        return "dev"


def _start(cmd_args) -> None:
    """Discover commands, then run the bot and the diagnostics server."""
    from telegram_bot import run_telegram_bot_async

    async def _run():
        count = await load_catalog(cmd_args.commands_dir)

        print(flush=True)
        print("  Ferret Bot", flush=True)
        print(f"  Commands: {count} from {shared_state.commands_dir}", flush=True)

        if cmd_args.no_server:
            print(flush=True)
            await run_telegram_bot_async()
            return

        uv_config = uvicorn.Config(
            app, host=cmd_args.host, port=cmd_args.port, log_level="warning"
        )
        server = uvicorn.Server(uv_config)
        serve_task = asyncio.create_task(server.serve())
        while not server.started:
            if serve_task.done():
                exc = serve_task.exception()
                if exc:
                    print(f"  ERROR starting server: {exc}", flush=True)
                sys.exit(1)
            await asyncio.sleep(0.1)

        print(f"  Diagnostics: http://{cmd_args.host}:{cmd_args.port}", flush=True)
        print(flush=True)

        bot_task = asyncio.create_task(run_telegram_bot_async())
        try:
            await serve_task
        finally:
            bot_task.cancel()
            try:
                await bot_task
            except asyncio.CancelledError:
                pass

    asyncio.run(_run())


def _print_catalog(cmd_args) -> None:
    """``ferret catalog``: one discovery pass, printed, no bot."""

    async def _run():
        count = await load_catalog(cmd_args.commands_dir)
        store = shared_state.commands

        print(f"  Commands directory: {shared_state.commands_dir}")
        print(f"  Files processed:    {len(shared_state.discovery_files)}")
        print()
        for name, descriptor in store.items():
            print(f"  {name:<16} {descriptor.description}  ({descriptor.source_location})")
        for item in shared_state.discovery_skipped:
            print(f"  skipped {item.get('path')}: {item.get('reason')}")
        print()
        print(
            f"  {count} command(s), log {format_size(store.bytes_written)} "
            f"of {format_size(store.capacity)} ({store.reallocations} reallocation(s))"
        )

    asyncio.run(_run())


def main():
    """Entry point for the `ferret` CLI."""
    import argparse
    import multiprocessing
    multiprocessing.freeze_support()

    parser = argparse.ArgumentParser(
        prog="ferret",
        description="Ferret Bot: chat bot with hot-pluggable Python commands",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--host", default="127.0.0.1", help="Diagnostics bind address (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="Diagnostics port (default: 8000)")
    parser.add_argument("--no-server", action="store_true", help="Run only the bot, no diagnostics server")
    parser.add_argument("--commands-dir", default=None, help="Plugin directory (default: from config)")

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("catalog", help="Discover commands, print the catalog and exit")

    cmd_args = parser.parse_args()

    if cmd_args.version:
        print(f"Ferret Bot v{_get_version()}")
        sys.exit(0)

    setup_logging()

    if cmd_args.command == "catalog":
        _print_catalog(cmd_args)
        sys.exit(0)

    _start(cmd_args)


if __name__ == "__main__":
    main()
