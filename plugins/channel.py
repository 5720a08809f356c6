"""One-shot exchange with the discovery worker process.

The consumer sends exactly one request and awaits exactly one response:

    request  = {"command": "load_commands", "commands_dir": ..., "duplicate_policy": ...}
    response = {"success": True, "commands": "<json>", "skipped": [...]}
             | {"success": False, "error": "..."}

The worker runs in a spawned process so module loading never blocks the
event loop that dispatches chat events.  The pool is shut down as soon as
the response arrives.
"""

import asyncio
import logging
import multiprocessing
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

import metrics
from utils.size_format import format_size

from .catalog_store import CatalogStore
from .converter import catalog_from_json
from .loader import LOAD_COMMANDS, handle_request
from .schema import CommandDescriptor, DescriptorValidationError, DiscoveryError

logger = logging.getLogger("ferret.channel")


@dataclass
class DiscoveryResult:
    catalog: dict[str, CommandDescriptor] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)
    skipped: list[dict] = field(default_factory=list)
    duration_ms: float = 0.0


def build_request(commands_dir: Path | str, duplicate_policy: str = "last_wins") -> dict:
    return {
        "command": LOAD_COMMANDS,
        "commands_dir": str(commands_dir),
        "duplicate_policy": duplicate_policy,
    }


def parse_response(response: dict) -> DiscoveryResult:
    """Turn a worker response into a DiscoveryResult or raise DiscoveryError."""
    if not isinstance(response, dict):
        raise DiscoveryError(f"Malformed discovery response: {response!r}")
    if not response.get("success"):
        raise DiscoveryError(response.get("error") or "Discovery failed")

    try:
        catalog = catalog_from_json(response.get("commands") or "{}")
    except (ValueError, DescriptorValidationError) as e:
        raise DiscoveryError(f"Malformed catalog in discovery response: {e}") from e

    skipped = list(response.get("skipped", []))
    for item in skipped:
        logger.warning("Discovery skipped %s: %s", item.get("path"), item.get("reason"))

    return DiscoveryResult(
        catalog=catalog,
        files=list(response.get("files", [])),
        skipped=skipped,
        duration_ms=float(response.get("duration_ms", 0.0)),
    )


async def request_catalog(
    commands_dir: Path | str,
    duplicate_policy: str = "last_wins",
    mp_context=None,
) -> DiscoveryResult:
    """Run one discovery pass in a fresh worker process.

    Raises DiscoveryError when the worker reports failure or dies.
    """
    context = mp_context or multiprocessing.get_context("spawn")
    request = build_request(commands_dir, duplicate_policy)
    loop = asyncio.get_running_loop()

    logger.debug("Sending discovery request: %s", request)
    pool = ProcessPoolExecutor(max_workers=1, mp_context=context)
    try:
        response = await loop.run_in_executor(pool, handle_request, request)
    except Exception as e:
        raise DiscoveryError(f"Discovery worker failed: {e}") from e
    finally:
        pool.shutdown(wait=False, cancel_futures=True)

    return parse_response(response)


def populate_store(store: CatalogStore, catalog: dict[str, CommandDescriptor]) -> None:
    """Fill *store* with *catalog*; called once per process."""
    for name, descriptor in catalog.items():
        store.set(name, descriptor)

    logger.debug(
        "Catalog store size after loading: %s (%d command(s))",
        format_size(store.bytes_written), len(store),
    )


async def load_commands(
    store: CatalogStore,
    commands_dir: Path | str,
    duplicate_policy: str = "last_wins",
    mp_context=None,
) -> DiscoveryResult:
    """Startup helper: discover, populate, record metrics.

    A failed pass is logged and leaves the store empty; it never raises.
    """
    try:
        result = await request_catalog(commands_dir, duplicate_policy, mp_context)
    except DiscoveryError as e:
        logger.error("Error loading commands from %s: %s", commands_dir, e)
        metrics.record_discovery(commands=0, skipped=0, duration=0.0, success=False)
        return DiscoveryResult()

    populate_store(store, result.catalog)
    metrics.record_discovery(
        commands=len(result.catalog),
        skipped=len(result.skipped),
        duration=result.duration_ms / 1000,
        success=True,
    )
    logger.info(
        "Loaded %d command(s) (%d skipped) in %.2fms",
        len(result.catalog), len(result.skipped), result.duration_ms,
    )
    return result
