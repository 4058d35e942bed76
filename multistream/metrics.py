"""Prometheus metrics for stream sessions."""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, generate_latest

logger = logging.getLogger(__name__)


class MetricsExporter:
    """Prometheus metrics exporter for the stream session manager.

    Each exporter owns its own registry so several managers (tests, reloads)
    never collide on metric names.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize Prometheus metrics."""
        self.registry = registry or CollectorRegistry()

        # Counters
        self.sessions_started_total = Counter(
            "multistream_sessions_started_total",
            "Total number of stream sessions started",
            registry=self.registry,
        )

        self.sessions_stopped_total = Counter(
            "multistream_sessions_stopped_total",
            "Total number of stream sessions stopped",
            registry=self.registry,
        )

        self.sessions_errored_total = Counter(
            "multistream_sessions_errored_total",
            "Total number of stream sessions whose encoder exited abnormally",
            registry=self.registry,
        )

        self.spawn_failures_total = Counter(
            "multistream_spawn_failures_total",
            "Total number of encoder spawn failures",
            registry=self.registry,
        )

        self.extractions_total = Counter(
            "multistream_extractions_total",
            "Total number of source extractions",
            ["result"],  # success, failure, timeout
            registry=self.registry,
        )

        # Gauges
        self.active_sessions = Gauge(
            "multistream_active_sessions",
            "Number of active stream sessions",
            registry=self.registry,
        )

        self.stream_bitrate_kbps = Gauge(
            "multistream_stream_bitrate_kbps",
            "Last reported encoder bitrate in kbps",
            ["stream_id"],
            registry=self.registry,
        )

        self.stream_fps = Gauge(
            "multistream_stream_fps",
            "Last reported encoder frames per second",
            ["stream_id"],
            registry=self.registry,
        )

        logger.debug("Metrics exporter initialized")

    def record_stats(self, stream_id: str, bitrate: float, fps: int) -> None:
        self.stream_bitrate_kbps.labels(stream_id=stream_id).set(bitrate)
        self.stream_fps.labels(stream_id=stream_id).set(fps)

    def forget_stream(self, stream_id: str) -> None:
        """Drop per-stream series once a session has ended."""
        for gauge in (self.stream_bitrate_kbps, self.stream_fps):
            try:
                gauge.remove(stream_id)
            except KeyError:
                pass

    def generate(self) -> bytes:
        """Render metrics in Prometheus text format."""
        return generate_latest(self.registry)
