"""AI extraction collaborator client.

Provides one interface over three backends:
- http: a hosted extraction service taking
  ``{caption, imageUrl, locationHint, postId, useOCR, ...}``
- openai / anthropic: direct SDK calls with the prompts in
  ``src.extraction.prompts``

SDK imports are deferred to first use so missing keys or packages never
fail at import time. Every backend sits behind its own circuit breaker
and bounded retries; responses are validated into ``AIExtraction`` at
this boundary and anything unparseable becomes None.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from src.extraction.config import ExtractionConfig
from src.extraction.prompts import EXTRACTION_PROMPT, EXTRACTION_TOOL, IMAGE_ADDENDUM, SYSTEM_PROMPT
from src.extraction.schemas import AIExtraction
from src.ingestion.circuit_breaker import CircuitOpenError, GenericCircuitBreaker
from src.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig

logger = logging.getLogger(__name__)


class AIExtractionError(Exception):
    """Raised when the AI collaborator could not be reached or kept failing."""


@dataclass(frozen=True)
class AIExtractionRequest:
    """Full post context sent to the AI collaborator."""

    caption: str
    post_id: str
    location_hint: str | None = None
    image_url: str | None = None
    use_ocr: bool = False
    posted_at: datetime | None = None
    owner_handle: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire format of the hosted extraction service."""
        return {
            "caption": self.caption,
            "imageUrl": self.image_url if self.use_ocr else None,
            "locationHint": self.location_hint,
            "postId": self.post_id,
            "useOCR": self.use_ocr,
            "postedAt": self.posted_at.isoformat() if self.posted_at else None,
            "ownerUsername": self.owner_handle,
        }

    def to_prompt(self) -> str:
        prompt = EXTRACTION_PROMPT.format(
            caption=self.caption,
            owner_handle=self.owner_handle or "unknown",
            posted_at=self.posted_at.isoformat() if self.posted_at else "unknown",
            location_hint=self.location_hint or "none",
            post_id=self.post_id,
        )
        if self.use_ocr and self.image_url:
            prompt += IMAGE_ADDENDUM
        return prompt


class AIExtractionClient:
    """Unified AI extraction client.

    Features:
    - Hosted HTTP service or OpenAI/Anthropic SDKs, chosen by config
    - Lazy SDK initialization (import on first use)
    - Per-provider circuit breakers
    - Bounded exponential backoff on transient failures
    - Response validation against the AIExtraction schema

    Args:
        config: Extraction configuration with provider, keys and limits.
    """

    def __init__(self, config: ExtractionConfig) -> None:
        self._config = config
        self._openai_client: Any = None
        self._anthropic_client: Any = None
        self._breakers: dict[str, GenericCircuitBreaker] = {
            name: GenericCircuitBreaker(
                failure_threshold=config.circuit_failure_threshold,
                recovery_timeout=config.circuit_recovery_timeout,
                name=f"ai_{name}",
            )
            for name in ("http", "openai", "anthropic")
        }

    @property
    def enabled(self) -> bool:
        return self._config.ai_enabled

    def breaker(self, provider: str) -> GenericCircuitBreaker:
        """Access a provider's circuit breaker."""
        return self._breakers[provider]

    def _get_openai_client(self) -> Any:
        """Lazy-initialize OpenAI async client."""
        if self._openai_client is None:
            import openai

            api_key = self._config.openai_api_key
            key_str = api_key.get_secret_value() if api_key else None
            self._openai_client = openai.AsyncOpenAI(
                api_key=key_str,
                timeout=self._config.ai_timeout_seconds,
                max_retries=0,
            )
        return self._openai_client

    def _get_anthropic_client(self) -> Any:
        """Lazy-initialize Anthropic async client."""
        if self._anthropic_client is None:
            import anthropic

            api_key = self._config.anthropic_api_key
            key_str = api_key.get_secret_value() if api_key else None
            self._anthropic_client = anthropic.AsyncAnthropic(
                api_key=key_str,
                timeout=self._config.ai_timeout_seconds,
                max_retries=0,
            )
        return self._anthropic_client

    async def extract(self, request: AIExtractionRequest) -> AIExtraction | None:
        """
        Ask the configured backend to extract the event.

        Returns:
            The validated extraction, or None when the backend answered
            without a usable result.

        Raises:
            AIExtractionError: When the backend is disabled, its circuit is
                open, or it kept failing after the retry budget.
        """
        provider = self._config.ai_provider
        if not self.enabled:
            raise AIExtractionError(f"AI provider {provider} is not configured")

        handlers: dict[str, Callable[[AIExtractionRequest], Awaitable[AIExtraction | None]]] = {
            "http": self._extract_http,
            "openai": self._extract_openai,
            "anthropic": self._extract_anthropic,
        }
        try:
            return await self._breakers[provider].call(handlers[provider], request)
        except CircuitOpenError as e:
            raise AIExtractionError(str(e)) from e

    async def _extract_http(self, request: AIExtractionRequest) -> AIExtraction | None:
        key = self._config.ai_api_key
        retry = RetryConfig(
            max_retries=self._config.ai_max_retries,
            base_delay=self._config.ai_retry_base_delay,
            max_backoff_seconds=self._config.ai_retry_max_delay,
        )
        try:
            async with HTTPClient(
                retry,
                timeout=self._config.ai_timeout_seconds,
                bearer_token=key.get_secret_value() if key else None,
            ) as client:
                response = await client.post(
                    self._config.ai_endpoint_url or "",
                    json_body=request.to_payload(),
                )
        except HTTPClientError as e:
            raise AIExtractionError(f"AI service request failed for {request.post_id}: {e}") from e

        try:
            data = response.json()
        except ValueError:
            logger.warning("AI service returned non-JSON body for %s", request.post_id)
            return None

        # The service wraps results as {"success": bool, "extraction": {...}}
        if isinstance(data, dict) and "extraction" in data:
            if not data.get("success", True) or not data["extraction"]:
                logger.info("AI service returned no extraction for %s", request.post_id)
                return None
            data = data["extraction"]
        return parse_extraction_payload(data, source="http")

    async def _extract_openai(self, request: AIExtractionRequest) -> AIExtraction | None:
        prompt = request.to_prompt()
        if request.use_ocr and request.image_url:
            content: Any = [
                {"type": "text", "text": prompt},
                {"type": "image_url", "image_url": {"url": request.image_url}},
            ]
        else:
            content = prompt

        async def _call() -> AIExtraction | None:
            client = self._get_openai_client()
            response = await client.chat.completions.create(
                model=self._config.openai_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
                temperature=0,
                response_format={"type": "json_object"},
            )
            raw = response.choices[0].message.content
            if not raw:
                return None
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Failed to parse openai response as JSON")
                return None
            return parse_extraction_payload(data, source="openai")

        return await self._with_retries(_call, "openai")

    async def _extract_anthropic(self, request: AIExtractionRequest) -> AIExtraction | None:
        content: list[dict[str, Any]] = []
        if request.use_ocr and request.image_url:
            content.append({"type": "image", "source": {"type": "url", "url": request.image_url}})
        content.append({"type": "text", "text": request.to_prompt()})

        async def _call() -> AIExtraction | None:
            client = self._get_anthropic_client()
            response = await client.messages.create(
                model=self._config.anthropic_model,
                max_tokens=1024,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": content}],
                tools=[EXTRACTION_TOOL],
                tool_choice={"type": "tool", "name": "submit_event"},
            )
            for block in response.content:
                if block.type == "tool_use" and block.name == "submit_event":
                    return parse_extraction_payload(block.input, source="anthropic")
            logger.warning("Anthropic response contained no tool_use block")
            return None

        return await self._with_retries(_call, "anthropic")

    async def _with_retries(
        self,
        fn: Callable[[], Awaitable[AIExtraction | None]],
        provider: str,
    ) -> AIExtraction | None:
        retry = RetryConfig(
            max_retries=self._config.ai_max_retries,
            base_delay=self._config.ai_retry_base_delay,
            max_backoff_seconds=self._config.ai_retry_max_delay,
        )
        attempts = self._config.ai_max_retries + 1
        for attempt in range(attempts):
            try:
                return await fn()
            except Exception as e:
                if attempt + 1 >= attempts:
                    raise AIExtractionError(
                        f"{provider} extraction failed after {attempts} attempts: {e}"
                    ) from e
                delay = retry.calculate_backoff(attempt)
                logger.warning(
                    "%s extraction attempt %d/%d failed (%s), retrying in %.2fs",
                    provider, attempt + 1, attempts, type(e).__name__, delay,
                )
                await asyncio.sleep(delay)
        return None

    async def close(self) -> None:
        """Clean up SDK clients."""
        if self._openai_client is not None:
            await self._openai_client.close()
            self._openai_client = None
        if self._anthropic_client is not None:
            await self._anthropic_client.close()
            self._anthropic_client = None


def parse_extraction_payload(data: Any, source: str = "ai") -> AIExtraction | None:
    """Validate a raw payload into an AIExtraction; None on any validation failure."""
    if not isinstance(data, dict):
        logger.warning("Ignoring %s extraction payload of type %s", source, type(data).__name__)
        return None
    try:
        return AIExtraction.model_validate(data)
    except ValidationError as e:
        logger.warning("Failed to validate %s extraction payload: %s", source, e)
        return None
