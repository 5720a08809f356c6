"""Command data model, shape checks and error kinds for Ferret Bot."""

import inspect
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable

NAME_PATTERN = re.compile(r"^\S+$")
DEFAULT_EXPORT = "COMMAND"
DUPLICATE_POLICIES = {"last_wins", "first_wins", "error"}


class DiscoveryError(Exception):
    """The whole discovery pass failed (root not enumerable, worker died)."""


class DuplicateCommandError(DiscoveryError):
    pass


class CommandShapeError(Exception):
    """A plugin file exported nothing that looks like a command."""


class SynthesisError(Exception):
    """Stored source text did not yield a compilable unit."""


class CommandNotFound(LookupError):
    pass


class DescriptorValidationError(ValueError):
    pass


@dataclass
class Command:
    """Authoring helper for plugin files.

    Any mapping or object with ``name``, ``description`` and ``execute``
    works just as well; this class only saves typing.
    """
    name: str
    description: str
    execute: Callable[..., Any]


@dataclass
class CommandDescriptor:
    name: str
    description: str
    body_source: str
    bindings: dict[str, str] = field(default_factory=dict)
    is_async: bool | None = None
    source_location: str = ""

    def validate(self) -> None:
        """Raise DescriptorValidationError on malformed data."""
        if not isinstance(self.name, str) or not NAME_PATTERN.match(self.name):
            raise DescriptorValidationError(
                f"Invalid command name {self.name!r}. Must be non-empty without whitespace"
            )
        if not isinstance(self.description, str):
            raise DescriptorValidationError(f"Command '{self.name}' description must be text")
        if not isinstance(self.body_source, str) or not self.body_source.strip():
            raise DescriptorValidationError(f"Command '{self.name}' has no body source")
        if not isinstance(self.bindings, dict):
            raise DescriptorValidationError(f"Command '{self.name}' bindings must be a mapping")
        for key, value in self.bindings.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise DescriptorValidationError(
                    f"Command '{self.name}' binding {key!r} must map a name to text"
                )
        if self.is_async is not None and not isinstance(self.is_async, bool):
            raise DescriptorValidationError(f"Command '{self.name}' is_async must be a boolean")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "body_source": self.body_source,
            "bindings": dict(self.bindings),
            "is_async": self.is_async,
            "source_location": self.source_location,
        }


def parse_descriptor_dict(data: dict) -> CommandDescriptor:
    """Parse a raw dict (from the catalog JSON) into a validated descriptor."""
    if not isinstance(data, dict):
        raise DescriptorValidationError("Descriptor data must be a dict")

    bindings = data.get("bindings", {})
    if bindings is None:
        bindings = {}

    descriptor = CommandDescriptor(
        name=data.get("name", ""),
        description=data.get("description", ""),
        body_source=data.get("body_source", ""),
        bindings=bindings,
        is_async=data.get("is_async"),
        source_location=str(data.get("source_location", "")),
    )

    descriptor.validate()
    return descriptor


def command_field(value: Any, key: str) -> Any:
    """Read ``key`` from a mapping-shaped or attribute-shaped command."""
    if isinstance(value, Mapping):
        return value.get(key)
    return getattr(value, key, None)


def _accepts_message(func: Callable) -> bool:
    try:
        sig = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    for param in sig.parameters.values():
        if param.kind in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        ):
            return True
    return False


def is_command(value: Any) -> bool:
    """True when *value* structurally matches the command shape."""
    if value is None or isinstance(value, type):
        return False
    name = command_field(value, "name")
    description = command_field(value, "description")
    execute = command_field(value, "execute")
    return (
        isinstance(name, str)
        and bool(name)
        and isinstance(description, str)
        and callable(execute)
        and _accepts_message(execute)
    )
