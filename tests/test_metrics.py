"""Tests for metrics.py — counters, gauges and text exposition."""

import metrics


class TestCollector:

    def test_command_counters(self):
        metrics.record_command("ping", success=True, duration=0.002)
        metrics.record_command("ping", success=False, duration=0.2)

        c = metrics.collector
        assert c.command_invocations_total.get(("ping", "success")) == 1
        assert c.command_invocations_total.get(("ping", "error")) == 1
        assert c.command_duration_seconds.count(("ping",)) == 2

    def test_discovery_gauges_track_last_run(self):
        metrics.record_discovery(commands=5, skipped=2, duration=0.25, success=True)
        metrics.record_discovery(commands=0, skipped=0, duration=0.0, success=False)

        c = metrics.collector
        assert c.catalog_commands.value == 0
        assert c.discovery_runs_total.get(("success",)) == 1
        assert c.discovery_runs_total.get(("error",)) == 1

    def test_reset(self):
        metrics.record_unknown_command()
        metrics.reset()
        assert metrics.collector.unknown_commands_total.get(()) == 0


class TestExposition:

    def test_histogram_buckets(self):
        metrics.record_command("echo", success=True, duration=0.003)
        text = metrics.get_metrics_text()

        assert "# TYPE command_duration_seconds histogram" in text
        assert 'command_duration_seconds_bucket{command="echo",le="0.001"} 0' in text
        assert 'command_duration_seconds_bucket{command="echo",le="0.005"} 1' in text
        assert 'command_duration_seconds_bucket{command="echo",le="+Inf"} 1' in text
        assert 'command_duration_seconds_sum{command="echo"} 0.003' in text

    def test_label_escaping(self):
        metrics.record_command('we"ird\\name', success=True, duration=0.0)
        text = metrics.get_metrics_text()
        assert 'command="we\\"ird\\\\name"' in text

    def test_always_ends_with_newline(self):
        assert metrics.get_metrics_text().endswith("\n")
        assert "process_uptime_seconds" in metrics.get_metrics_text()
