"""Object storage for step images."""

from __future__ import annotations

import os
from typing import Protocol
from urllib.parse import quote, urlparse, urlunparse

from app.config import Settings
from google.auth.credentials import AnonymousCredentials
from google.cloud import storage
from starlette.concurrency import run_in_threadpool


class BlobStore(Protocol):
  async def upload(self, data: bytes, path: str, content_type: str) -> str:
    """Persist bytes at path and return a permanent URL."""


class StorageClient(BlobStore):
  """Thin wrapper over GCS and emulator access for step image uploads."""

  def __init__(self, settings: Settings) -> None:
    self._bucket_name = settings.image_bucket
    self._storage_host = settings.gcs_storage_host
    # Ensure emulator endpoint is visible to the SDK in local development.
    if self._storage_host:
      emulator_endpoint = _normalize_emulator_endpoint(self._storage_host)
      os.environ["GCS_STORAGE_EMULATOR_HOST"] = emulator_endpoint
      self._public_base = f"{emulator_endpoint}/storage/v1/b/{self._bucket_name}/o"
      self._client = storage.Client(project=settings.gcp_project_id or "local-dev", credentials=AnonymousCredentials(), client_options={"api_endpoint": emulator_endpoint})
    else:
      self._public_base = f"https://storage.googleapis.com/{self._bucket_name}"
      self._client = storage.Client(project=settings.gcp_project_id)

  @property
  def bucket_name(self) -> str:
    """Return the bucket holding step images."""
    return self._bucket_name

  async def ensure_bucket(self) -> None:
    """Create the bucket when missing in emulator mode."""
    # Keep production startup side-effect free; only auto-create in emulator mode.
    if not self._storage_host:
      return
    bucket = self._client.bucket(self._bucket_name)

    def _create_if_missing() -> None:
      if not bucket.exists(client=self._client):
        self._client.create_bucket(bucket)

    await run_in_threadpool(_create_if_missing)

  async def upload(self, data: bytes, path: str, content_type: str, cache_control: str = "public, max-age=31536000") -> str:
    """Upload bytes and return the object's public URL."""
    bucket = self._client.bucket(self._bucket_name)
    blob = bucket.blob(path)
    blob.cache_control = cache_control
    blob.content_type = content_type
    await run_in_threadpool(blob.upload_from_string, data, content_type)
    return self.public_url(path)

  def public_url(self, path: str) -> str:
    if self._storage_host:
      return f"{self._public_base}/{quote(path, safe='')}?alt=media"
    return f"{self._public_base}/{path}"


def build_storage_client(settings: Settings) -> StorageClient:
  """Create a storage client instance with environment-aware credentials."""
  return StorageClient(settings)


def _normalize_emulator_endpoint(raw_endpoint: str) -> str:
  """Normalize emulator endpoint so the SDK receives scheme+host+port only."""
  parsed = urlparse(raw_endpoint)
  if not parsed.scheme or not parsed.netloc:
    return raw_endpoint.rstrip("/")
  return urlunparse((parsed.scheme, parsed.netloc, "", "", "", "")).rstrip("/")
