"""
Image fetch-and-store collaborator.

Downloads a post image once and keeps it under a stable name so review
tooling never depends on the platform's expiring CDN links. Failures are
reported as ``None``; callers continue without a stored image.
"""

import asyncio
import logging
from pathlib import Path

from src.ingestion.http_client import HTTPClient, HTTPClientError, RetryConfig

logger = logging.getLogger(__name__)

_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class ImageStore:
    """
    Stores post images as ``{post_id}.jpg`` under a base directory.

    Args:
        base_dir: Target directory, created on first write.
        timeout: Download timeout in seconds.
        retry_config: Retry policy for the download.
    """

    def __init__(
        self,
        base_dir: str | Path,
        timeout: float = 15.0,
        retry_config: RetryConfig | None = None,
    ) -> None:
        self._base_dir = Path(base_dir)
        self._timeout = timeout
        self._retry_config = retry_config or RetryConfig(max_retries=1, base_delay=0.5)

    def reference_for(self, post_id: str) -> str:
        """Stable reference for a post's stored image."""
        return f"instagram-posts/{post_id}.jpg"

    async def fetch_and_store(self, post_id: str, image_url: str) -> str | None:
        """
        Download an image and store it.

        Returns:
            The stored reference, or None when the download or write failed.
        """
        try:
            async with HTTPClient(self._retry_config, timeout=self._timeout) as client:
                response = await client.get(image_url, headers={"User-Agent": _USER_AGENT})
        except HTTPClientError as e:
            logger.warning(f"Image download failed for {post_id}: {e}")
            return None

        content = response.content
        if not content:
            logger.warning(f"Image download for {post_id} returned an empty body")
            return None

        reference = self.reference_for(post_id)
        target = self._base_dir / reference
        try:
            await asyncio.to_thread(self._write, target, content)
        except OSError as e:
            logger.warning(f"Image write failed for {post_id}: {e}")
            return None
        return reference

    @staticmethod
    def _write(target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
