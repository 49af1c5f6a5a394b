"""Observability layer - structured logging and Prometheus metrics."""

from src.observability.logging import bind_context, clear_context, get_logger, setup_logging, unbind_context
from src.observability.metrics import MetricsCollector, get_metrics

__all__ = [
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "unbind_context",
    "MetricsCollector",
    "get_metrics",
]
