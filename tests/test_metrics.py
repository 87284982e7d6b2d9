"""Tests for the Prometheus text registry."""

from __future__ import annotations

import pytest

from parley.monitoring.registry import MetricsRegistry


def test_metrics_registry_renders_prometheus_text():
    registry = MetricsRegistry()
    counter = registry.counter("demo_total", "Demo counter.", label_names=("kind",))
    counter.inc(kind="a")
    counter.inc(amount=2, kind="a")

    assert counter.value(kind="a") == 3
    rendered = registry.render()
    assert "# TYPE demo_total counter" in rendered
    assert 'demo_total{kind="a"} 3' in rendered
    with pytest.raises(ValueError):
        counter.inc(other="b")


def test_gauges_move_both_ways_and_names_are_unique():
    registry = MetricsRegistry()
    gauge = registry.gauge("open_sockets", "Open sockets.", label_names=("scope",))
    gauge.inc(scope="channel")
    gauge.inc(scope="channel")
    gauge.dec(scope="channel")

    assert gauge.value(scope="channel") == 1
    assert "# TYPE open_sockets gauge" in registry.render()
    with pytest.raises(ValueError):
        registry.counter("open_sockets", "Duplicate.")
    with pytest.raises(ValueError):
        registry.counter("demo_total", "Demo.").inc(amount=-1)
