"""Command execution engine: rebuild callables from stored source and run them.

Every invocation starts from the descriptor text held in the catalog store:

  1. look the command up (CommandNotFound when absent)
  2. pick sync vs async from the descriptor flag (text heuristic fallback)
  3. extract parameter names and body with ``ast`` (whole text on failure)
  4. resolve bindings: JSON first, then source, else UNAVAILABLE
  5. compile a fresh function ``(message, args, logger, *bindings)`` and call it
  6. time the call, reply with the fault text on error, never re-raise

Nothing is cached between invocations.
"""

import ast
import inspect
import json
import logging
import re
import textwrap
import time
from dataclasses import dataclass, field
from typing import Any

import metrics
from utils.message_chunks import split_message
from .schema import CommandDescriptor, CommandNotFound, SynthesisError

logger = logging.getLogger("ferret.commands")

SYNTH_NAME = "__ferret_command__"
DEFAULT_PARAMS = ("message", "args")
_ASYNC_MARKER = re.compile(r"\b(async|await)\b")


class _Unavailable:
    """Placeholder bound when a binding could not be reconstructed."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "<unavailable>"


UNAVAILABLE = _Unavailable()


@dataclass
class ExecutionContext:
    name: str
    args: list[str]
    bindings: dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started_at) * 1000


@dataclass
class ExecutionResult:
    name: str
    success: bool
    duration_ms: float
    error: str = ""


# ---------------------------------------------------------------------------
# Reconstruction helpers
# ---------------------------------------------------------------------------

def looks_async(source: str) -> bool:
    """Textual guess used when a descriptor carries no is_async flag."""
    return bool(_ASYNC_MARKER.search(source))


def _find_function(tree: ast.AST) -> ast.AST | None:
    for node in ast.walk(tree):
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda)):
            return node
    return None


def extract_function(source: str) -> tuple[list[str], list[ast.stmt] | None]:
    """Split stored function text into ``(param_names, body_statements)``.

    The body is None when no function could be found (degraded mode); the
    default parameter names are returned then.
    """
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return list(DEFAULT_PARAMS), None

    node = _find_function(tree)
    if node is None:
        return list(DEFAULT_PARAMS), None

    params = [a.arg for a in node.args.posonlyargs + node.args.args]
    if params and params[0] in ("self", "cls"):
        params = params[1:]

    if isinstance(node, ast.Lambda):
        return params, [ast.copy_location(ast.Return(value=node.body), node.body)]
    return params, node.body


def _signature(params: list[str], binding_names: list[str]) -> list[str]:
    names = list(params[: len(DEFAULT_PARAMS)])
    names += list(DEFAULT_PARAMS[len(names):])
    taken = set(names)
    for extra in ["logger", *binding_names]:
        if extra not in taken:
            names.append(extra)
            taken.add(extra)
    return names


def _header(names: list[str], is_async: bool) -> str:
    prefix = "async def" if is_async else "def"
    return f"{prefix} {SYNTH_NAME}({', '.join(names)}):\n"


def build_function_tree(
    body: list[ast.stmt], params: list[str], binding_names: list[str], is_async: bool
) -> tuple[ast.Module, list[str]]:
    """Graft *body* onto a fresh ``__ferret_command__`` definition.

    The statements are moved as nodes, so string literals and decorators
    come through untouched.
    """
    names = _signature(params, binding_names)
    module = ast.parse(_header(names, is_async) + " pass\n")
    module.body[0].body = list(body) or [ast.Pass()]
    return ast.fix_missing_locations(module), names


def build_function_source(
    body: str, params: list[str], binding_names: list[str], is_async: bool
) -> tuple[str, list[str]]:
    """Synthesized function text for degraded bodies (no function found)."""
    names = _signature(params, binding_names)
    return _header(names, is_async) + textwrap.indent(body or "pass", "    ") + "\n", names


def _is_async(descriptor: CommandDescriptor) -> bool:
    if descriptor.is_async is None:
        return looks_async(descriptor.body_source)
    return descriptor.is_async


def _synthesized_code(descriptor: CommandDescriptor, binding_names: list[str]):
    params, body = extract_function(descriptor.body_source)
    is_async = _is_async(descriptor)
    if body is None:
        logger.warning(
            "Could not extract a function body for '%s'; using stored text as-is",
            descriptor.name,
        )
        return build_function_source(descriptor.body_source, params, binding_names, is_async)
    return build_function_tree(body, params, binding_names, is_async)


def check_synthesizable(descriptor: CommandDescriptor) -> None:
    """Compile the descriptor's body once; raises SynthesisError on failure."""
    code, _ = _synthesized_code(descriptor, list(descriptor.bindings))
    try:
        compile(code, f"<command:{descriptor.name}>", "exec")
    except (SyntaxError, TypeError, ValueError) as e:
        raise SynthesisError(f"Command '{descriptor.name}' does not compile: {e}") from e


def compile_binding(name: str, text: str, namespace: dict[str, Any]) -> Any:
    """Execute binding source in *namespace* and return the value it defines."""
    before = set(namespace)
    exec(compile(text, f"<binding:{name}>", "exec"), namespace)
    if name in namespace:
        return namespace[name]
    created = [key for key in namespace if key not in before and key != "__builtins__"]
    if len(created) == 1:
        namespace[name] = namespace[created[0]]
        return namespace[name]
    raise SynthesisError(f"Binding source for '{name}' did not define it")


def resolve_bindings(bindings: dict[str, str], namespace: dict[str, Any]) -> dict[str, Any]:
    """Rebuild bindings, tolerating partial failure.

    Everything lands in the shared *namespace* too, so callables find the
    other module-level exports they refer to.
    """
    resolved: dict[str, Any] = {}
    pending: list[tuple[str, str]] = []

    for name, text in bindings.items():
        try:
            resolved[name] = json.loads(text)
            namespace[name] = resolved[name]
        except (json.JSONDecodeError, TypeError):
            pending.append((name, text))

    for name, text in pending:
        try:
            resolved[name] = compile_binding(name, text, namespace)
        except Exception as e:
            logger.warning("Binding '%s' unavailable: %s", name, e)
            resolved[name] = UNAVAILABLE
            namespace[name] = UNAVAILABLE

    return resolved


def synthesize(descriptor: CommandDescriptor, namespace: dict[str, Any], binding_names: list[str]):
    """Compile a fresh callable for *descriptor* inside *namespace*."""
    code, names = _synthesized_code(descriptor, binding_names)
    if logger.isEnabledFor(logging.DEBUG):
        text = code if isinstance(code, str) else ast.unparse(code)
        logger.debug("Synthesized code for %s: %s", descriptor.name, text[:150])
    exec(compile(code, f"<command:{descriptor.name}>", "exec"), namespace)
    return namespace[SYNTH_NAME], names


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def _reply_error(message: Any, text: str) -> None:
    try:
        for chunk in split_message(text):
            result = message.reply(chunk)
            if inspect.isawaitable(result):
                await result
    except Exception as e:
        logger.error("Could not send error reply: %s", e)


async def execute_command(store, name: str, message: Any, args: list[str]) -> ExecutionResult:
    """Run command *name* from *store*.

    Raises CommandNotFound for unknown names; every other fault is caught,
    reported to the user and returned as an unsuccessful result.
    """
    context = ExecutionContext(name=name, args=list(args))
    descriptor = store.get(name)
    if descriptor is None:
        raise CommandNotFound(name)

    logger.info("Executing command %s with %d arg(s)", name, len(args))
    try:
        namespace: dict[str, Any] = {"__name__": f"ferret_command_{name}"}
        context.bindings = resolve_bindings(descriptor.bindings, namespace)
        binding_names = list(context.bindings)
        func, names = synthesize(descriptor, namespace, binding_names)

        command_logger = logging.getLogger(f"ferret.command.{name}")
        values = {"logger": command_logger, **context.bindings}
        call_args = [message, context.args] + [values[n] for n in names[len(DEFAULT_PARAMS):]]

        result = func(*call_args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        duration = context.elapsed_ms()
        logger.error("Error executing command %s (%.2fms): %s", name, duration, e, exc_info=True)
        await _reply_error(message, f"Error executing command: {e}")
        metrics.record_command(name, success=False, duration=duration / 1000)
        return ExecutionResult(name=name, success=False, duration_ms=duration, error=str(e))

    duration = context.elapsed_ms()
    logger.info("Command executed successfully: %s (%.2fms)", name, duration)
    metrics.record_command(name, success=True, duration=duration / 1000)
    return ExecutionResult(name=name, success=True, duration_ms=duration)
