# === NAVMAP v1 ===
# {
#   "module": "RpkiMirror.RrdpFetch.metrics",
#   "purpose": "Prometheus instrumentation for fetch cycles and the scrape endpoint",
#   "sections": [
#     {"id": "fetcher-metrics", "name": "FetcherMetrics", "anchor": "class-fetchermetrics", "kind": "class"},
#     {"id": "start-metrics-server", "name": "start_metrics_server", "anchor": "function-start-metrics-server", "kind": "function"},
#     {"id": "get-metrics", "name": "get_metrics", "anchor": "function-get-metrics", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Prometheus metrics for the RRDP fetcher.

Every :class:`FetcherMetrics` registers its collectors on a registry of its
own unless one is passed in, so several fetchers (or tests) can coexist in a
process without duplicate-name errors.

Usage:
    metrics = FetcherMetrics()
    start_metrics_server("0.0.0.0", 9464, metrics.registry)
    # Prometheus scrapes http://host:9464/metrics
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, generate_latest, start_http_server

__all__ = ["OUTCOME_KINDS", "FetcherMetrics", "start_metrics_server", "get_metrics"]

logger = logging.getLogger(__name__)

OUTCOME_KINDS = ("success", "not_modified", "structure_error", "aborted", "fatal")


class FetcherMetrics:
    """Counters and gauges updated once per fetch cycle."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()

        # Counter: fetch cycles by outcome kind
        self.cycles = Counter(
            "rrdp_fetch_cycles_total",
            "RRDP fetch cycles by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self.serial = Gauge(
            "rrdp_snapshot_serial",
            "Serial of the last successfully processed snapshot",
            registry=self.registry,
        )
        self.objects = Gauge(
            "rrdp_objects",
            "Objects extracted from the last successful snapshot",
            registry=self.registry,
        )
        self.collisions = Gauge(
            "rrdp_object_collisions",
            "Duplicate URIs discarded from the last successful snapshot",
            registry=self.registry,
        )
        self.last_success = Gauge(
            "rrdp_last_success_timestamp_seconds",
            "Unix time of the last successful fetch cycle",
            registry=self.registry,
        )
        # Histogram: wall-clock duration of a full cycle
        self.duration = Histogram(
            "rrdp_fetch_duration_seconds",
            "Duration of RRDP fetch cycles",
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0),
            registry=self.registry,
        )

        for kind in OUTCOME_KINDS:
            self.cycles.labels(outcome=kind)

    def success(self, serial: int, collision_count: int, object_count: int) -> None:
        self.cycles.labels(outcome="success").inc()
        self.serial.set(serial)
        self.collisions.set(collision_count)
        self.objects.set(object_count)
        self.last_success.set(time.time())

    def not_modified(self) -> None:
        self.cycles.labels(outcome="not_modified").inc()

    def failure(self, kind: str) -> None:
        """Count a failed cycle under ``kind`` (``structure_error`` or ``fatal``)."""

        self.cycles.labels(outcome=kind).inc()

    def timeout(self) -> None:
        self.cycles.labels(outcome="aborted").inc()

    def observe_duration(self, seconds: float) -> None:
        self.duration.observe(seconds)


def start_metrics_server(host: str = "0.0.0.0", port: int = 9464, registry: Optional[CollectorRegistry] = None) -> bool:
    """Start the Prometheus scrape endpoint in a daemon thread.

    Returns:
        True if the server started, False if the port could not be bound.
    """

    try:
        start_http_server(port, addr=host, registry=registry if registry is not None else REGISTRY)
    except OSError as exc:
        logger.error(
            "Failed to start metrics server on %s:%s: %s", host, port, exc, extra={"stage": "metrics"}
        )
        return False
    logger.info(
        "Prometheus metrics server started on http://%s:%s/metrics", host, port, extra={"stage": "metrics"}
    )
    return True


def get_metrics(registry: CollectorRegistry) -> str:
    """Return the metrics of ``registry`` in Prometheus text exposition format."""

    return generate_latest(registry).decode("utf-8")
