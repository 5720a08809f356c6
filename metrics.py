"""In-memory metrics for command dispatch and plugin discovery.

Exposed in Prometheus text format by ``get_metrics_text()`` and served at
``GET /metrics``.  Mutations take a ``threading.Lock`` because the FastAPI
diagnostics routes may read from a worker thread while the bot records.

Usage:
    import metrics

    metrics.record_command("ping", success=True, duration=0.004)
    text = metrics.get_metrics_text()
"""

from __future__ import annotations

import math
import threading
import time
from collections import defaultdict
from typing import Dict, Tuple


# Command bodies are expected to be fast; the upper buckets catch shell-style
# commands that wait on subprocesses.
_DEFAULT_BUCKETS: Tuple[float, ...] = (
    0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 5.0, 30.0,
)


class _Counter:
    """Monotonic counter keyed by label tuples."""

    __slots__ = ("_values",)

    def __init__(self) -> None:
        self._values: Dict[Tuple[str, ...], float] = defaultdict(float)

    def inc(self, labels: Tuple[str, ...], amount: float = 1.0) -> None:
        self._values[labels] += amount

    def get(self, labels: Tuple[str, ...]) -> float:
        return self._values.get(labels, 0.0)

    def items(self):
        return self._values.items()


class _Gauge:
    __slots__ = ("_value",)

    def __init__(self) -> None:
        self._value: float = 0.0

    def set(self, value: float) -> None:
        self._value = float(value)

    @property
    def value(self) -> float:
        return self._value


class _Histogram:
    """Bucketed observations with a running sum and count per label set."""

    __slots__ = ("_buckets", "_observations")

    def __init__(self, buckets: Tuple[float, ...] = _DEFAULT_BUCKETS) -> None:
        self._buckets = buckets
        self._observations: Dict[Tuple[str, ...], dict] = {}

    def observe(self, labels: Tuple[str, ...], value: float) -> None:
        if labels not in self._observations:
            self._observations[labels] = {
                "buckets": {le: 0 for le in self._buckets},
                "sum": 0.0,
                "count": 0,
            }
        obs = self._observations[labels]
        obs["sum"] += value
        obs["count"] += 1
        for le in self._buckets:
            if value <= le:
                obs["buckets"][le] += 1

    def count(self, labels: Tuple[str, ...]) -> int:
        obs = self._observations.get(labels)
        return obs["count"] if obs else 0

    def items(self):
        return self._observations.items()


class MetricsCollector:
    """Thread-safe collector shared by the bot and the diagnostics server."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_time = time.time()

        self.command_invocations_total = _Counter()
        self.unknown_commands_total = _Counter()
        self.discovery_runs_total = _Counter()

        self.catalog_commands = _Gauge()
        self.discovery_skipped_files = _Gauge()
        self.discovery_duration_seconds = _Gauge()

        self.command_duration_seconds = _Histogram()

    def record_command(self, name: str, success: bool, duration: float) -> None:
        """Record one command execution.

        Parameters
        ----------
        name:
            Command name as stored in the catalog.
        success:
            False when the body (or its reconstruction) raised.
        duration:
            Wall-clock time in **seconds**, lookup to completion.
        """
        status = "success" if success else "error"
        with self._lock:
            self.command_invocations_total.inc((name, status))
            self.command_duration_seconds.observe((name,), duration)

    def record_unknown_command(self) -> None:
        # Not labelled by name: arbitrary user text would explode cardinality
        with self._lock:
            self.unknown_commands_total.inc(())

    def record_discovery(
        self, commands: int, skipped: int, duration: float, success: bool
    ) -> None:
        """Record the outcome of a discovery pass (duration in seconds)."""
        with self._lock:
            self.discovery_runs_total.inc(("success" if success else "error",))
            self.catalog_commands.set(commands)
            self.discovery_skipped_files.set(skipped)
            self.discovery_duration_seconds.set(duration)

    def get_metrics_text(self) -> str:
        with self._lock:
            return self._render()

    def _render(self) -> str:
        lines: list[str] = []

        uptime = time.time() - self._start_time
        lines.append("# HELP process_uptime_seconds Time since the metrics collector was created")
        lines.append("# TYPE process_uptime_seconds gauge")
        lines.append(f"process_uptime_seconds {_fmt(uptime)}")
        lines.append("")

        lines.append("# HELP command_invocations_total Command executions by name and status")
        lines.append("# TYPE command_invocations_total counter")
        for (name, status), value in sorted(self.command_invocations_total.items()):
            lines.append(
                f'command_invocations_total{{command="{_escape(name)}",status="{status}"}} {_fmt(value)}'
            )
        lines.append("")

        lines.append("# HELP command_duration_seconds Command execution time in seconds")
        lines.append("# TYPE command_duration_seconds histogram")
        for (name,), obs in sorted(self.command_duration_seconds.items()):
            label = _escape(name)
            for le in sorted(obs["buckets"]):
                lines.append(
                    f'command_duration_seconds_bucket{{command="{label}",le="{_fmt(le)}"}} {obs["buckets"][le]}'
                )
            lines.append(
                f'command_duration_seconds_bucket{{command="{label}",le="+Inf"}} {obs["count"]}'
            )
            lines.append(f'command_duration_seconds_sum{{command="{label}"}} {_fmt(obs["sum"])}')
            lines.append(f'command_duration_seconds_count{{command="{label}"}} {obs["count"]}')
        lines.append("")

        lines.append("# HELP unknown_commands_total Messages naming a command that is not in the catalog")
        lines.append("# TYPE unknown_commands_total counter")
        lines.append(f"unknown_commands_total {_fmt(self.unknown_commands_total.get(()))}")
        lines.append("")

        lines.append("# HELP discovery_runs_total Discovery passes by outcome")
        lines.append("# TYPE discovery_runs_total counter")
        for (status,), value in sorted(self.discovery_runs_total.items()):
            lines.append(f'discovery_runs_total{{status="{status}"}} {_fmt(value)}')
        lines.append("")

        for metric, help_text, gauge in (
            ("catalog_commands", "Commands held in the catalog store", self.catalog_commands),
            ("discovery_skipped_files", "Plugin files skipped by the last discovery pass",
             self.discovery_skipped_files),
            ("discovery_duration_seconds", "Duration of the last discovery pass",
             self.discovery_duration_seconds),
        ):
            lines.append(f"# HELP {metric} {help_text}")
            lines.append(f"# TYPE {metric} gauge")
            lines.append(f"{metric} {_fmt(gauge.value)}")
            lines.append("")

        return "\n".join(lines) + "\n"


def _fmt(value: float) -> str:
    """Render a number the way Prometheus expects (ints bare, +Inf/NaN tokens)."""
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if math.isnan(value):
        return "NaN"
    if value == int(value) and abs(value) < 1e15:
        return str(int(value))
    return f"{value:.6g}"


def _escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


collector = MetricsCollector()


def record_command(name: str, success: bool, duration: float) -> None:
    collector.record_command(name, success, duration)


def record_unknown_command() -> None:
    collector.record_unknown_command()


def record_discovery(commands: int, skipped: int, duration: float, success: bool) -> None:
    collector.record_discovery(commands, skipped, duration, success)


def get_metrics_text() -> str:
    """Return all metrics as a Prometheus-compatible text exposition string."""
    return collector.get_metrics_text()


def reset() -> None:
    """Replace the singleton with a fresh collector (tests)."""
    global collector
    collector = MetricsCollector()
