"""Ferret Bot command plugin system.

Commands are Python files under the commands directory.  They are
discovered once at startup in a worker process, stored as source text in
the catalog store, and rebuilt into callables on every invocation.
"""

from .schema import (
    Command,
    CommandDescriptor,
    CommandNotFound,
    CommandShapeError,
    DescriptorValidationError,
    DiscoveryError,
    DuplicateCommandError,
    SynthesisError,
    is_command,
    parse_descriptor_dict,
)
from .catalog_store import CatalogStore, StoreEntry
from .executor import UNAVAILABLE, ExecutionResult, execute_command
from .converter import minify_source, catalog_from_json, catalog_to_json
from .loader import discover_commands, handle_request
from .channel import load_commands, populate_store, request_catalog

__all__ = [
    "Command",
    "CommandDescriptor",
    "CommandNotFound",
    "CommandShapeError",
    "DescriptorValidationError",
    "DiscoveryError",
    "DuplicateCommandError",
    "SynthesisError",
    "is_command",
    "parse_descriptor_dict",
    "CatalogStore",
    "StoreEntry",
    "UNAVAILABLE",
    "ExecutionResult",
    "execute_command",
    "minify_source",
    "catalog_from_json",
    "catalog_to_json",
    "discover_commands",
    "handle_request",
    "load_commands",
    "populate_store",
    "request_catalog",
]
