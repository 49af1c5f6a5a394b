"""Ingestion infrastructure - input schemas, HTTP retry layer, and image storage."""

from src.ingestion.circuit_breaker import CircuitOpenError, GenericCircuitBreaker
from src.ingestion.http_client import HTTPClient, HTTPClientError, RateLimitError, RetryConfig
from src.ingestion.schemas import BatchRequest, EngagementMetrics, RawPostRecord

__all__ = [
    "BatchRequest",
    "CircuitOpenError",
    "EngagementMetrics",
    "GenericCircuitBreaker",
    "HTTPClient",
    "HTTPClientError",
    "RateLimitError",
    "RawPostRecord",
    "RetryConfig",
]
