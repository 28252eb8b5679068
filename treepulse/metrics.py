"""
TreePulse — Prometheus Metrics

Tracks scan outcomes and latency, tree size, activations by trigger,
history evictions and propagation steps. Rendering the exposition text is
left to the embedding application.
"""
import time
from functools import wraps
from typing import Callable
from prometheus_client import (
    Counter, Histogram, Gauge, Info,
    generate_latest,
)


# ═══════════════════════════════════════════════════════════
# COUNTERS
# ═══════════════════════════════════════════════════════════

scans_total = Counter(
    "treepulse_scans_total",
    "Tree scans by outcome",
    ["outcome"]
)

activations_total = Counter(
    "treepulse_activations_total",
    "Activation events recorded",
    ["trigger"]
)

history_evictions = Counter(
    "treepulse_history_evictions_total",
    "Entries evicted from bounded history buffers",
    ["buffer"]
)

propagation_steps = Counter(
    "treepulse_propagation_steps_total",
    "Simulated propagation steps",
    ["outcome"]
)

# ═══════════════════════════════════════════════════════════
# HISTOGRAMS
# ═══════════════════════════════════════════════════════════

scan_latency = Histogram(
    "treepulse_scan_latency_seconds",
    "Tree scan latency",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
)

# ═══════════════════════════════════════════════════════════
# GAUGES
# ═══════════════════════════════════════════════════════════

tree_nodes = Gauge(
    "treepulse_tree_nodes",
    "Nodes in the current tree",
    ["update_strategy"]
)

# ═══════════════════════════════════════════════════════════
# INFO
# ═══════════════════════════════════════════════════════════

build_info = Info(
    "treepulse_build",
    "Build information"
)
build_info.info({
    "version": "0.1.0",
    "component": "core",
})


def metrics_text() -> bytes:
    """Prometheus text exposition of every registered metric."""
    return generate_latest()


# ═══════════════════════════════════════════════════════════
# DECORATORS
# ═══════════════════════════════════════════════════════════

def track_scan(func: Callable):
    """Decorator to time a scan; outcome counting stays with the caller."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            scan_latency.observe(time.perf_counter() - start)
    return wrapper
