"""
HTTP layer shared by the pipeline's external collaborators.

The AI extraction service, the geocoder and the image fetcher all call
out through ``HTTPClient``. Transient failures (timeouts, dropped
connections, 429 and 5xx answers) are retried with bounded exponential
backoff; anything else fails immediately with ``HTTPClientError`` so the
caller can skip its enrichment and move on to the next post.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any

import httpx

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
RETRYABLE_EXCEPTIONS = (
    httpx.TimeoutException,
    httpx.ConnectError,
    httpx.ReadError,
    httpx.RemoteProtocolError,
)


@dataclass
class RetryConfig:
    """
    Bounded exponential backoff.

    Delay for attempt ``n`` (0-indexed) is
    ``min(max_backoff_seconds, base_delay * 2**n)`` plus up to
    ``jitter_factor`` of that value as random jitter.
    """

    max_retries: int = 3
    max_backoff_seconds: float = 60.0
    base_delay: float = 1.0
    jitter_factor: float = 0.1

    def calculate_backoff(self, attempt: int) -> float:
        delay = min(self.base_delay * (2**attempt), self.max_backoff_seconds)
        return delay + delay * self.jitter_factor * random.random()


class HTTPClientError(Exception):
    """A collaborator request failed for good."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class RateLimitError(HTTPClientError):
    """The collaborator kept answering 429 until retries ran out."""


def _retry_after_seconds(response: httpx.Response) -> float | None:
    """Delay requested by a numeric ``Retry-After`` header, if any."""
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HTTPClient:
    """
    Async HTTP client with retry and optional bearer auth.

    A server-provided ``Retry-After`` is honoured on 429/503 answers,
    capped at ``max_backoff_seconds``.

    Example:
        async with HTTPClient(RetryConfig(max_retries=2), timeout=10.0) as client:
            response = await client.post(url, json_body={"venueName": "The Victor"})
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        bearer_token: str | None = None,
    ):
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._bearer_token = bearer_token
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        headers = {"Authorization": f"Bearer {self._bearer_token}"} if self._bearer_token else None
        self._client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=True, headers=headers)
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get(self, url: str, headers: dict[str, str] | None = None) -> httpx.Response:
        return await self.request("GET", url, headers=headers)

    async def post(
        self,
        url: str,
        json_body: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        return await self.request("POST", url, json_body=json_body, headers=headers)

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Send a request, retrying transient failures.

        Raises:
            RateLimitError: Still rate limited after the last retry
            HTTPClientError: Any other failure
        """
        if not self._client:
            raise RuntimeError("HTTPClient must be used as async context manager")

        max_retries = self.retry_config.max_retries
        attempt = 0
        while True:
            try:
                response = await self._client.request(method, url, headers=headers, json=json_body)
            except RETRYABLE_EXCEPTIONS as e:
                if attempt >= max_retries:
                    raise HTTPClientError(f"{method} {url} failed after {attempt + 1} attempts: {e}") from e
                await self._sleep(attempt, url, type(e).__name__)
                attempt += 1
                continue
            except httpx.HTTPError as e:
                raise HTTPClientError(f"{method} {url} failed: {e}") from e

            status = response.status_code
            if status < 400:
                return response

            if status not in RETRYABLE_STATUS_CODES or attempt >= max_retries:
                error_cls = RateLimitError if status == 429 else HTTPClientError
                raise error_cls(
                    f"{method} {url} returned {status} after {attempt + 1} attempts",
                    status_code=status,
                    response_body=response.text,
                )

            await self._sleep(attempt, url, f"status {status}", _retry_after_seconds(response))
            attempt += 1

    async def _sleep(
        self,
        attempt: int,
        url: str,
        reason: str,
        retry_after: float | None = None,
    ) -> None:
        if retry_after is not None:
            delay = min(retry_after, self.retry_config.max_backoff_seconds)
        else:
            delay = self.retry_config.calculate_backoff(attempt)
        logger.warning(
            f"Retrying {url} after {reason} "
            f"(attempt {attempt + 1}/{self.retry_config.max_retries + 1}, sleeping {delay:.2f}s)"
        )
        await asyncio.sleep(delay)
