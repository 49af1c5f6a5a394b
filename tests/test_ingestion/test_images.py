"""Tests for the image fetch-and-store collaborator."""

import httpx
import pytest
import respx

from src.ingestion.http_client import RetryConfig
from src.ingestion.images import ImageStore

IMAGE_URL = "https://cdn.example.com/sunset3.jpg"


@pytest.fixture
def store(tmp_path) -> ImageStore:
    return ImageStore(tmp_path, retry_config=RetryConfig(max_retries=0))


class TestImageStore:
    """Tests for ImageStore."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_stores_image_under_post_id(self, store, tmp_path):
        respx.get(IMAGE_URL).mock(return_value=httpx.Response(200, content=b"\xff\xd8jpeg"))

        reference = await store.fetch_and_store("3301", IMAGE_URL)

        assert reference == "instagram-posts/3301.jpg"
        assert (tmp_path / reference).read_bytes() == b"\xff\xd8jpeg"

    @pytest.mark.asyncio
    @respx.mock
    async def test_download_failure_returns_none(self, store, tmp_path):
        respx.get(IMAGE_URL).mock(return_value=httpx.Response(403))

        assert await store.fetch_and_store("3301", IMAGE_URL) is None
        assert not (tmp_path / "instagram-posts").exists()

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body_returns_none(self, store):
        respx.get(IMAGE_URL).mock(return_value=httpx.Response(200, content=b""))

        assert await store.fetch_and_store("3301", IMAGE_URL) is None
