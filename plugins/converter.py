"""Convert live command objects into portable descriptors and back to JSON.

Source text is captured with ``inspect`` and shrunk with a tokenizer-based
minifier: comments and blank lines go away, whitespace between tokens is
collapsed and dropped next to structural punctuation, and block indentation
is rewritten as one space per level.  String literals are copied verbatim.
"""

import ast
import inspect
import io
import json
import linecache
import logging
import textwrap
import tokenize
import types
from typing import Any, Callable

from .executor import check_synthesizable
from .schema import (
    DEFAULT_EXPORT,
    CommandDescriptor,
    CommandShapeError,
    DescriptorValidationError,
    SynthesisError,
    command_field,
    parse_descriptor_dict,
)

logger = logging.getLogger("ferret.discovery")

_PUNCTUATION = frozenset("()[]{};,:")
_LITERAL_STARTS = {
    getattr(tokenize, name) for name in ("FSTRING_START", "TSTRING_START")
    if hasattr(tokenize, name)
}
_LITERAL_ENDS = {
    getattr(tokenize, name) for name in ("FSTRING_END", "TSTRING_END")
    if hasattr(tokenize, name)
}
_SKIPPED_TOKENS = {tokenize.COMMENT, tokenize.NL, tokenize.ENCODING}


# ---------------------------------------------------------------------------
# Source capture
# ---------------------------------------------------------------------------

def _lambda_source(func: Callable) -> str:
    """Cut a lambda expression out of the line that defines it."""
    code = func.__code__
    source = "".join(linecache.getlines(code.co_filename))
    if not source:
        raise SynthesisError(f"Source file for lambda is unavailable: {code.co_filename}")
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise SynthesisError(f"Cannot parse {code.co_filename}: {e}") from e

    arg_names = list(code.co_varnames[: code.co_argcount])
    for node in ast.walk(tree):
        if not isinstance(node, ast.Lambda) or node.lineno != code.co_firstlineno:
            continue
        params = [a.arg for a in node.args.posonlyargs + node.args.args]
        if params != arg_names:
            continue
        segment = ast.get_source_segment(source, node)
        if segment:
            # Continuation lines may depend on brackets outside the lambda
            return f"({segment})" if "\n" in segment else segment

    raise SynthesisError(f"Could not locate lambda source on line {code.co_firstlineno}")


def function_source(func: Callable) -> str:
    """Return the textual source of *func*, dedented."""
    if getattr(func, "__name__", "") == "<lambda>" and hasattr(func, "__code__"):
        return _lambda_source(func)
    try:
        return textwrap.dedent(inspect.getsource(func))
    except (OSError, TypeError) as e:
        raise SynthesisError(f"Source for {func!r} is unavailable: {e}") from e


def _line_offsets(source: str) -> list[int]:
    offsets = [0, 0]
    for line in source.splitlines(keepends=True):
        offsets.append(offsets[-1] + len(line))
    return offsets


def minify_source(source: str) -> str:
    """Shrink Python source while keeping it parseable.

    Raises SynthesisError when the text cannot be tokenized.
    """
    source = textwrap.dedent(source).strip("\n") + "\n"
    offsets = _line_offsets(source)

    lines: list[str] = []
    parts: list[str] = []
    depth = 0
    line_depth = 0
    prev_end: tuple[int, int] | None = None
    prev_text = ""
    nested = 0
    literal_start = (0, 0)

    def emit(text: str, start: tuple[int, int], end: tuple[int, int]) -> None:
        nonlocal prev_end, prev_text, line_depth
        if not parts:
            line_depth = depth
        elif (
            start != prev_end
            and prev_text[-1] not in _PUNCTUATION
            and text[0] not in _PUNCTUATION
        ):
            parts.append(" ")
        parts.append(text)
        prev_end = end
        prev_text = text

    def flush() -> None:
        if parts:
            lines.append(" " * line_depth + "".join(parts))
            parts.clear()

    try:
        for tok in tokenize.generate_tokens(io.StringIO(source).readline):
            if nested:
                # f-string internals are copied from the original text
                if tok.type in _LITERAL_STARTS:
                    nested += 1
                elif tok.type in _LITERAL_ENDS:
                    nested -= 1
                    if not nested:
                        begin = offsets[literal_start[0]] + literal_start[1]
                        stop = offsets[tok.end[0]] + tok.end[1]
                        emit(source[begin:stop], literal_start, tok.end)
                continue
            if tok.type in _LITERAL_STARTS:
                nested = 1
                literal_start = tok.start
                continue
            if tok.type in _SKIPPED_TOKENS:
                continue
            if tok.type == tokenize.INDENT:
                depth += 1
            elif tok.type == tokenize.DEDENT:
                depth -= 1
            elif tok.type == tokenize.NEWLINE:
                flush()
            elif tok.type == tokenize.ENDMARKER:
                break
            else:
                emit(tok.string, tok.start, tok.end)
    except (tokenize.TokenError, SyntaxError) as e:
        raise SynthesisError(f"Cannot tokenize source: {e}") from e

    flush()
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------

def _binding_text(key: str, value: Any, module_name: str) -> str | None:
    """Portable text for one exported value, or None when it is ignored."""
    if isinstance(value, types.ModuleType):
        return f"import {value.__name__} as {key}"

    if callable(value):
        origin = getattr(value, "__module__", None)
        qualname = getattr(value, "__qualname__", "")
        if origin and origin != module_name and qualname.isidentifier():
            return f"from {origin} import {qualname} as {key}"
        try:
            text = minify_source(function_source(value))
        except SynthesisError as e:
            logger.debug("Ignoring export %s: %s", key, e)
            return None
        if getattr(value, "__name__", "") == "<lambda>":
            return f"{key}={text}"
        return text

    if isinstance(value, (dict, list, tuple)):
        try:
            return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.debug("Ignoring export %s: not JSON-serializable (%s)", key, e)
            return None

    return None


def extract_bindings(
    exports: dict[str, Any], exclude: set[str], module_name: str
) -> dict[str, str]:
    """Capture every other export of a plugin module as a named binding."""
    bindings: dict[str, str] = {}
    for key, value in exports.items():
        if key in exclude or key == DEFAULT_EXPORT:
            continue
        text = _binding_text(key, value, module_name)
        if text is not None:
            bindings[key] = text
    return bindings


# ---------------------------------------------------------------------------
# Descriptors
# ---------------------------------------------------------------------------

def command_to_descriptor(
    command: Any,
    exports: dict[str, Any],
    export_name: str,
    module_name: str,
    location: str = "",
) -> CommandDescriptor:
    """Serialize one command export.

    Raises SynthesisError when the body cannot be captured or would not
    compile back, and CommandShapeError when the metadata is unusable.
    """
    execute = command_field(command, "execute")
    body_source = minify_source(function_source(execute))

    descriptor = CommandDescriptor(
        name=command_field(command, "name"),
        description=command_field(command, "description"),
        body_source=body_source,
        bindings=extract_bindings(exports, {export_name}, module_name),
        is_async=inspect.iscoroutinefunction(execute),
        source_location=location,
    )
    try:
        descriptor.validate()
    except DescriptorValidationError as e:
        raise CommandShapeError(str(e)) from e

    check_synthesizable(descriptor)
    return descriptor


def catalog_to_json(catalog: dict[str, CommandDescriptor]) -> str:
    return json.dumps(
        {name: descriptor.to_dict() for name, descriptor in catalog.items()},
        ensure_ascii=False,
    )


def catalog_from_json(text: str) -> dict[str, CommandDescriptor]:
    """Parse the catalog text of a discovery response.

    Malformed entries are logged and dropped; a body that is not a JSON
    object raises DescriptorValidationError.
    """
    data = json.loads(text)
    if not isinstance(data, dict):
        raise DescriptorValidationError("Catalog must be a JSON object")

    catalog: dict[str, CommandDescriptor] = {}
    for name, raw in data.items():
        try:
            catalog[name] = parse_descriptor_dict(raw)
        except DescriptorValidationError as e:
            logger.warning("Dropping catalog entry %r: %s", name, e)
    return catalog
