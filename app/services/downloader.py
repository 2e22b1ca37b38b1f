"""HTTP download of provider-hosted temporary images."""

from __future__ import annotations

import logging
from typing import Protocol

import httpx

logger = logging.getLogger(__name__)


class EmptyDownloadError(RuntimeError):
  """Raised when a download succeeds but returns no bytes."""


class ImageDownloader(Protocol):
  async def download(self, url: str) -> bytes:
    """Fetch the image bytes behind a temporary URL."""


class HttpxImageDownloader:
  """Download images with a shared httpx client and a per-request timeout."""

  def __init__(self, *, timeout_seconds: float = 30.0, client: httpx.AsyncClient | None = None) -> None:
    self._owns_client = client is None
    self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), follow_redirects=True)

  async def download(self, url: str) -> bytes:
    response = await self._client.get(url)
    response.raise_for_status()
    content = response.content
    if not content:
      raise EmptyDownloadError(f"Empty image body from {httpx.URL(url).host}")
    logger.debug("Downloaded %d bytes from %s", len(content), httpx.URL(url).host)
    return content

  async def aclose(self) -> None:
    if self._owns_client:
      await self._client.aclose()
