"""
Prometheus metrics for monitoring the ingestion pipeline.

Defines and exposes metrics for:
- Post outcomes per batch (added, updated, unchanged, rejected, failed)
- Per-stage processing latency
- Venue resolution sources and AI fallback outcomes
- Review tier distribution
- Run logger drops and pattern training events

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0)


class MetricsCollector:
    """
    Prometheus metrics collector for the event-scout pipeline.

    Usage:
        metrics = MetricsCollector()
        metrics.start_server()

        metrics.record_post_outcome("added")
        metrics.record_stage_latency("venue_resolution", 0.05)
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.posts_processed = Counter(
            "event_scout_posts_processed_total",
            "Total number of posts processed",
            ["outcome"],  # added, updated, unchanged, rejected, failed
        )

        self.processing_errors = Counter(
            "event_scout_processing_errors_total",
            "Total processing errors",
            ["stage", "error_type"],
        )

        self.stage_latency = Histogram(
            "event_scout_stage_latency_seconds",
            "Time spent in each pipeline stage",
            ["stage"],
            buckets=LATENCY_BUCKETS,
        )

        self.venue_resolutions = Counter(
            "event_scout_venue_resolutions_total",
            "Venue resolution outcomes by source",
            ["source"],  # known_venues, regional_cache, geocoder, unresolved
        )

        self.ai_extractions = Counter(
            "event_scout_ai_extractions_total",
            "AI fallback extraction outcomes",
            ["outcome"],  # accepted, reference_only, failed, skipped
        )

        self.review_tiers = Counter(
            "event_scout_review_tiers_total",
            "Review tiers assigned to posts",
            ["tier"],
        )

        self.run_log_dropped = Counter(
            "event_scout_run_log_dropped_total",
            "Run log entries dropped because the sink queue was full",
        )

        self.pattern_training = Counter(
            "event_scout_pattern_training_total",
            "Pattern health updates from ground-truth comparison",
            ["result"],  # success, failure, suggestion
        )

        self.active_runs = Gauge(
            "event_scout_active_runs",
            "Batches currently being processed by this process",
        )

        self._server_started = False

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to listen on (default from settings)
        """
        if self._server_started:
            return

        port = port or get_settings().metrics_port
        start_http_server(port, registry=REGISTRY)
        self._server_started = True
        logger.info(f"Metrics server started on port {port}")

    def record_post_outcome(self, outcome: str) -> None:
        """Record the final outcome of a single post."""
        self.posts_processed.labels(outcome=outcome).inc()

    def record_stage_latency(self, stage: str, latency: float) -> None:
        """
        Record latency of one pipeline stage.

        Args:
            stage: Stage name (extraction, ai_fallback, venue_resolution, ...)
            latency: Duration in seconds
        """
        self.stage_latency.labels(stage=stage).observe(latency)

    def record_error(self, stage: str, error_type: str) -> None:
        """Record a processing error for a stage."""
        self.processing_errors.labels(stage=stage, error_type=error_type).inc()

    def record_venue_resolution(self, source: str) -> None:
        """Record which stage of the venue chain produced a match."""
        self.venue_resolutions.labels(source=source).inc()

    def record_ai_extraction(self, outcome: str) -> None:
        """Record an AI fallback outcome."""
        self.ai_extractions.labels(outcome=outcome).inc()

    def record_review_tier(self, tier: str) -> None:
        """Record the review tier assigned to a post."""
        self.review_tiers.labels(tier=tier).inc()

    def record_log_dropped(self) -> None:
        """Record a run log entry dropped by the sink."""
        self.run_log_dropped.inc()

    def record_pattern_training(self, result: str, count: int = 1) -> None:
        """Record pattern counter updates or suggestions."""
        if count > 0:
            self.pattern_training.labels(result=result).inc(count)


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector, creating it on first use."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
