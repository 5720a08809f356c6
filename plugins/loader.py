"""Plugin discovery — walks the commands directory and serializes commands.

Runs inside the discovery worker process (see ``plugins.channel``).

Discovery rules:
  1. Every ``.py`` file below the root, recursively; names starting with
     ``_`` are skipped.  Directories are visited in sorted order so the
     processing order is stable and reported back.
  2. A module-level ``COMMAND`` that matches the command shape is the only
     command taken from its file.
  3. Otherwise every export matching the shape is taken.
  4. All other exports become the command's bindings.

A file that fails to import, exports no command, or whose command cannot be
serialized is logged and skipped.  Only an unreadable root aborts the pass.
"""

import importlib.util
import logging
import os
import re
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .converter import catalog_to_json, command_to_descriptor
from .schema import (
    DEFAULT_EXPORT,
    DUPLICATE_POLICIES,
    CommandDescriptor,
    CommandShapeError,
    DiscoveryError,
    DuplicateCommandError,
    SynthesisError,
    is_command,
)

logger = logging.getLogger("ferret.discovery")

LOAD_COMMANDS = "load_commands"
MODULE_PREFIX = "ferret_plugins"


@dataclass
class SkippedFile:
    path: str
    reason: str


@dataclass
class DiscoveryReport:
    commands: dict[str, CommandDescriptor] = field(default_factory=dict)
    files: list[str] = field(default_factory=list)
    skipped: list[SkippedFile] = field(default_factory=list)
    duration_ms: float = 0.0


def iter_plugin_files(root: Path) -> list[Path]:
    """Recursively list candidate plugin files below *root*.

    Raises DiscoveryError when the root itself cannot be enumerated.
    """
    root = Path(root)
    if not root.is_dir():
        raise DiscoveryError(f"Commands directory not found: {root}")

    def on_error(error: OSError) -> None:
        if Path(error.filename) == root:
            raise error
        logger.warning("Skipping unreadable directory %s: %s", error.filename, error)

    files: list[Path] = []
    try:
        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error):
            dirnames[:] = sorted(
                d for d in dirnames if not d.startswith((".", "_"))
            )
            for filename in sorted(filenames):
                if filename.endswith(".py") and not filename.startswith("_"):
                    files.append(Path(dirpath) / filename)
    except OSError as e:
        raise DiscoveryError(f"Cannot enumerate {root}: {e}") from e
    return files


def module_name_for(path: Path, root: Path) -> str:
    relative = path.relative_to(root).with_suffix("")
    parts = [re.sub(r"\W", "_", part) for part in relative.parts]
    return ".".join([MODULE_PREFIX, *parts])


def load_module_exports(path: Path, root: Path) -> tuple[str, dict[str, Any]]:
    """Import a plugin file and return ``(module_name, exports)``."""
    module_name = module_name_for(path, root)
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Cannot create an import spec for {path}")

    module = importlib.util.module_from_spec(spec)
    # Registered so inspect/dataclasses can find the module while it runs
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise

    names = getattr(module, "__all__", None)
    if names is None:
        names = [key for key in vars(module) if not key.startswith("_")]
    exports = {key: getattr(module, key) for key in names if hasattr(module, key)}
    return module_name, exports


def find_commands(exports: dict[str, Any]) -> list[tuple[str, Any]]:
    """Pick the command exports of one module (default export first)."""
    default = exports.get(DEFAULT_EXPORT)
    if default is not None and is_command(default):
        return [(DEFAULT_EXPORT, default)]
    return [
        (key, value) for key, value in exports.items()
        if key != DEFAULT_EXPORT and is_command(value)
    ]


def _register(
    report: DiscoveryReport,
    descriptor: CommandDescriptor,
    policy: str,
) -> None:
    existing = report.commands.get(descriptor.name)
    if existing is not None:
        if policy == "error":
            raise DuplicateCommandError(
                f"Command '{descriptor.name}' defined in both "
                f"{existing.source_location} and {descriptor.source_location}"
            )
        if policy == "first_wins":
            logger.warning(
                "Duplicate command '%s' in %s ignored (kept %s)",
                descriptor.name, descriptor.source_location, existing.source_location,
            )
            return
        logger.warning(
            "Duplicate command '%s' in %s replaces %s",
            descriptor.name, descriptor.source_location, existing.source_location,
        )
    report.commands[descriptor.name] = descriptor


def discover_commands(root: Path, duplicate_policy: str = "last_wins") -> DiscoveryReport:
    """Run one discovery pass over *root*."""
    if duplicate_policy not in DUPLICATE_POLICIES:
        raise DiscoveryError(
            f"Invalid duplicate policy '{duplicate_policy}'. Must be one of: {DUPLICATE_POLICIES}"
        )

    root = Path(root).resolve()
    start = time.perf_counter()
    report = DiscoveryReport()

    logger.debug("Loading commands from: %s", root)
    files = iter_plugin_files(root)
    logger.debug("Found %d candidate file(s)", len(files))

    for path in files:
        location = path.relative_to(root).as_posix()
        report.files.append(location)
        file_start = time.perf_counter()

        try:
            module_name, exports = load_module_exports(path, root)
        except (Exception, SystemExit) as e:
            logger.warning("Skipping %s: import failed: %s", location, e)
            report.skipped.append(SkippedFile(location, f"import failed: {e}"))
            continue

        found = find_commands(exports)
        if not found:
            logger.warning("Skipping %s: no command export found", location)
            report.skipped.append(SkippedFile(location, "no command export found"))
            continue

        for export_name, command in found:
            try:
                descriptor = command_to_descriptor(
                    command, exports, export_name, module_name, location
                )
            except (SynthesisError, CommandShapeError) as e:
                logger.warning("Skipping %s:%s: %s", location, export_name, e)
                report.skipped.append(SkippedFile(location, str(e)))
                continue
            _register(report, descriptor, duplicate_policy)
            logger.debug(
                "Found command: %s in %s (%.2fms)",
                descriptor.name, location, (time.perf_counter() - file_start) * 1000,
            )

    report.duration_ms = (time.perf_counter() - start) * 1000
    logger.info(
        "Loaded %d command(s) in %.2fms: %s",
        len(report.commands), report.duration_ms, list(report.commands),
    )
    return report


def handle_request(request: dict) -> dict:
    """Discovery worker entry point: one request in, one response out."""
    from logging_config import setup_logging

    setup_logging(console_only=True)

    if not isinstance(request, dict) or request.get("command") != LOAD_COMMANDS:
        verb = request.get("command") if isinstance(request, dict) else request
        return {"success": False, "error": f"Unknown request: {verb!r}"}

    try:
        report = discover_commands(
            Path(request["commands_dir"]),
            request.get("duplicate_policy", "last_wins"),
        )
    except Exception as e:
        logger.error("Error loading commands: %s", e)
        return {"success": False, "error": str(e)}

    return {
        "success": True,
        "commands": catalog_to_json(report.commands),
        "files": report.files,
        "skipped": [{"path": s.path, "reason": s.reason} for s in report.skipped],
        "duration_ms": report.duration_ms,
    }
