"""Tests for the collaborator HTTP client."""

from unittest.mock import AsyncMock, patch

import httpx
import pytest
import respx

from src.ingestion.http_client import (
    HTTPClient,
    HTTPClientError,
    RateLimitError,
    RetryConfig,
)

GEOCODE_URL = "https://geo.example.com/geocode"


def _fast_retries(max_retries: int = 3) -> RetryConfig:
    return RetryConfig(max_retries=max_retries, base_delay=0.01, jitter_factor=0.0)


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_values(self):
        config = RetryConfig()

        assert config.max_retries == 3
        assert config.max_backoff_seconds == 60.0
        assert config.base_delay == 1.0
        assert config.jitter_factor == 0.1

    def test_backoff_doubles_per_attempt(self):
        """Without jitter the delay is base * 2**attempt."""
        config = RetryConfig(base_delay=0.5, jitter_factor=0.0)

        assert [config.calculate_backoff(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_backoff_is_capped(self):
        config = RetryConfig(base_delay=1.0, max_backoff_seconds=3.0, jitter_factor=0.0)

        assert config.calculate_backoff(1) == 2.0
        assert config.calculate_backoff(2) == 3.0
        assert config.calculate_backoff(12) == 3.0

    def test_jitter_stays_within_factor(self):
        config = RetryConfig(base_delay=2.0, jitter_factor=0.25)

        for _ in range(50):
            delay = config.calculate_backoff(0)
            assert 2.0 <= delay <= 2.5


class TestHTTPClient:
    """Tests for HTTPClient."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_sends_json_body(self):
        route = respx.post(GEOCODE_URL).mock(
            return_value=httpx.Response(200, json={"lat": 14.55, "lng": 121.02})
        )

        async with HTTPClient(retry_config=_fast_retries()) as client:
            response = await client.post(GEOCODE_URL, json_body={"venueName": "The Victor"})

        assert response.json() == {"lat": 14.55, "lng": 121.02}
        assert route.calls.last.request.content == b'{"venueName":"The Victor"}'

    @pytest.mark.asyncio
    @respx.mock
    async def test_bearer_token_sent_on_every_request(self):
        route = respx.get(GEOCODE_URL).mock(return_value=httpx.Response(200, json={}))

        async with HTTPClient(bearer_token="s3cret") as client:
            await client.get(GEOCODE_URL)
            await client.get(GEOCODE_URL, headers={"X-Trace": "abc"})

        assert route.call_count == 2
        for call in route.calls:
            assert call.request.headers["Authorization"] == "Bearer s3cret"
        assert route.calls.last.request.headers["X-Trace"] == "abc"

    @pytest.mark.asyncio
    @respx.mock
    async def test_no_auth_header_without_token(self):
        route = respx.get(GEOCODE_URL).mock(return_value=httpx.Response(200, json={}))

        async with HTTPClient() as client:
            await client.get(GEOCODE_URL)

        assert "Authorization" not in route.calls.last.request.headers

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_on_429_then_success(self):
        route = respx.post(GEOCODE_URL).mock(
            side_effect=[
                httpx.Response(429, text="slow down"),
                httpx.Response(200, json={"ok": True}),
            ]
        )

        async with HTTPClient(retry_config=_fast_retries()) as client:
            response = await client.post(GEOCODE_URL, json_body={})

        assert response.status_code == 200
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_on_server_errors(self):
        route = respx.get(GEOCODE_URL).mock(
            side_effect=[
                httpx.Response(502),
                httpx.Response(503),
                httpx.Response(200, json={}),
            ]
        )

        async with HTTPClient(retry_config=_fast_retries()) as client:
            response = await client.get(GEOCODE_URL)

        assert response.status_code == 200
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_after_header_is_honoured_and_capped(self):
        respx.get(GEOCODE_URL).mock(
            side_effect=[
                httpx.Response(429, headers={"Retry-After": "2"}),
                httpx.Response(503, headers={"Retry-After": "900"}),
                httpx.Response(200, json={}),
            ]
        )
        config = RetryConfig(max_retries=3, max_backoff_seconds=5.0, jitter_factor=0.0)

        with patch("src.ingestion.http_client.asyncio.sleep", new=AsyncMock()) as sleep:
            async with HTTPClient(retry_config=config) as client:
                await client.get(GEOCODE_URL)

        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 5.0]

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_error_when_retries_exhausted(self):
        route = respx.get(GEOCODE_URL).mock(return_value=httpx.Response(429, text="limited"))

        async with HTTPClient(retry_config=_fast_retries(max_retries=2)) as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get(GEOCODE_URL)

        assert route.call_count == 3
        assert exc_info.value.status_code == 429
        assert exc_info.value.response_body == "limited"
        assert "after 3 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_when_retries_exhausted(self):
        respx.get(GEOCODE_URL).mock(return_value=httpx.Response(500))

        async with HTTPClient(retry_config=_fast_retries(max_retries=1)) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.get(GEOCODE_URL)

        assert not isinstance(exc_info.value, RateLimitError)
        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_errors_are_not_retried(self):
        route = respx.post(GEOCODE_URL).mock(return_value=httpx.Response(404, text="no venue"))

        async with HTTPClient(retry_config=_fast_retries()) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.post(GEOCODE_URL, json_body={"venueName": "Nowhere"})

        assert route.call_count == 1
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    @respx.mock
    async def test_retry_on_timeout(self):
        route = respx.get(GEOCODE_URL).mock(
            side_effect=[httpx.ReadTimeout("timed out"), httpx.Response(200, json={})]
        )

        async with HTTPClient(retry_config=_fast_retries()) as client:
            response = await client.get(GEOCODE_URL)

        assert response.status_code == 200
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_failures_exhaust_into_client_error(self):
        route = respx.get(GEOCODE_URL).mock(side_effect=httpx.ConnectError("refused"))

        async with HTTPClient(retry_config=_fast_retries(max_retries=2)) as client:
            with pytest.raises(HTTPClientError) as exc_info:
                await client.get(GEOCODE_URL)

        assert route.call_count == 3
        assert exc_info.value.status_code is None

    @pytest.mark.asyncio
    async def test_client_not_used_as_context_manager(self):
        client = HTTPClient()

        with pytest.raises(RuntimeError, match="must be used as async context manager"):
            await client.get(GEOCODE_URL)
