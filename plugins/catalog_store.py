"""Hybrid lookup table + append-only byte log for the command catalog.

The store keeps two independent representations of everything inserted:

  - a dict for O(1) lookups (``get``/``has``/``delete``/iteration)
  - a growable ``bytearray`` audit log where every ``set`` appends a
    ``key:json;`` record (UTF-8), even when it overwrites an existing key

``delete`` only touches the lookup table; the log never shrinks except on
``clear``.  The log is meant for diagnostics (``export_log_hex``), not as a
source of truth.
"""

import json
from dataclasses import asdict, dataclass, is_dataclass
from typing import Any, Iterator

DEFAULT_INITIAL_SIZE = 1024


@dataclass(frozen=True)
class StoreEntry:
    key: Any
    value: Any
    start: int
    end: int


def _encode_default(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    return repr(value)


def encode_record(key: Any, value: Any) -> bytes:
    """Encode one log record exactly as ``set`` appends it.

    Values JSON cannot express (non-string dict keys, cycles) are logged as
    their ``repr`` string.
    """
    try:
        value_str = json.dumps(
            value, separators=(",", ":"), ensure_ascii=False, default=_encode_default
        )
    except (TypeError, ValueError):
        value_str = json.dumps(repr(value), ensure_ascii=False)
    return f"{key}:{value_str};".encode("utf-8")


class CatalogStore:
    """Lookup table plus append-only log; see module docstring."""

    def __init__(self, initial_size: int = DEFAULT_INITIAL_SIZE):
        if initial_size < 1:
            raise ValueError("initial_size must be at least 1 byte")
        self._initial_size = initial_size
        self._buffer = bytearray(initial_size)
        self._position = 0
        self._store: dict[Any, Any] = {}
        self._ranges: dict[Any, tuple[int, int]] = {}
        self._reallocations = 0

    # -- writes --------------------------------------------------------

    def set(self, key: Any, value: Any) -> "CatalogStore":
        data = encode_record(key, value)
        required = self._position + len(data)

        if required > len(self._buffer):
            new_size = max(len(self._buffer) * 2, required)
            new_buffer = bytearray(new_size)
            new_buffer[: self._position] = self._buffer[: self._position]
            self._buffer = new_buffer
            self._reallocations += 1

        start = self._position
        self._buffer[start:required] = data
        self._position = required
        self._store[key] = value
        self._ranges[key] = (start, required)
        return self

    def delete(self, key: Any) -> bool:
        """Remove *key* from the lookup table only. The log keeps its record."""
        if key not in self._store:
            return False
        del self._store[key]
        self._ranges.pop(key, None)
        return True

    def clear(self) -> None:
        self._store.clear()
        self._ranges.clear()
        self._buffer = bytearray(self._initial_size)
        self._position = 0

    # -- reads ---------------------------------------------------------

    def get(self, key: Any, default: Any = None) -> Any:
        return self._store.get(key, default)

    def has(self, key: Any) -> bool:
        return key in self._store

    def entry(self, key: Any) -> StoreEntry | None:
        if key not in self._store:
            return None
        start, end = self._ranges[key]
        return StoreEntry(key=key, value=self._store[key], start=start, end=end)

    def read_record(self, key: Any) -> bytes | None:
        """Raw log bytes of the most recent record written for *key*."""
        entry = self.entry(key)
        if entry is None:
            return None
        return bytes(self._buffer[entry.start:entry.end])

    def keys(self):
        return self._store.keys()

    def values(self):
        return self._store.values()

    def items(self):
        return self._store.items()

    @property
    def size(self) -> int:
        return len(self._store)

    @property
    def capacity(self) -> int:
        return len(self._buffer)

    @property
    def bytes_written(self) -> int:
        return self._position

    @property
    def reallocations(self) -> int:
        return self._reallocations

    def get_buffer(self) -> bytes:
        """The used portion of the log."""
        return bytes(self._buffer[: self._position])

    def export_log_hex(self) -> str:
        return self._buffer[: self._position].hex()

    def __contains__(self, key: Any) -> bool:
        return key in self._store

    def __len__(self) -> int:
        return len(self._store)

    def __iter__(self) -> Iterator[Any]:
        return iter(self._store)

    def __repr__(self) -> str:
        return (
            f"<CatalogStore [{len(self._store)} entries, "
            f"{self._position}/{len(self._buffer)} bytes]>"
        )
