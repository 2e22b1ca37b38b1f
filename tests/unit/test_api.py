"""HTTP surface tests against in-memory pipeline collaborators."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_pipeline_service
from app.main import app
from tests.conftest import Harness


@pytest.fixture
async def client(harness: Harness) -> AsyncIterator[AsyncClient]:
  app.dependency_overrides[get_pipeline_service] = lambda: harness.service
  try:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
      yield async_client
  finally:
    app.dependency_overrides.clear()
    await harness.shutdown()


@pytest.mark.anyio
async def test_generate_then_poll(client: AsyncClient, harness: Harness) -> None:
  response = await client.post("/v1/recipes/generate", json={"query": "margherita pizza", "persist": True}, headers={"x-user-id": "user-7"})

  assert response.status_code == 202
  body = response.json()
  assert body["phase"] == "queued"
  assert response.headers["x-request-id"]

  await harness.service.wait(body["request_id"])
  status_response = await client.get(f"/v1/recipes/generate/{body['request_id']}")

  assert status_response.status_code == 200
  status = status_response.json()
  assert status["phase"] == "completed"
  assert status["progress_percent"] == 100.0
  assert status["owner_copy_id"]
  assert len(status["partial_draft"]["steps"]) == 4


@pytest.mark.anyio
async def test_unknown_status_is_well_formed(client: AsyncClient) -> None:
  response = await client.get("/v1/recipes/generate/does-not-exist")

  assert response.status_code == 200
  assert response.json()["phase"] == "unknown"
  assert response.json()["partial_draft"] is None


@pytest.mark.anyio
async def test_cancel_unknown_request(client: AsyncClient) -> None:
  response = await client.post("/v1/recipes/generate/does-not-exist/cancel")

  assert response.status_code == 200
  assert response.json() == {"request_id": "does-not-exist", "accepted": False}


@pytest.mark.anyio
async def test_duplicate_request_id_conflicts(client: AsyncClient) -> None:
  payload = {"query": "pizza", "request_id": "fixed-id"}
  assert (await client.post("/v1/recipes/generate", json=payload)).status_code == 202

  response = await client.post("/v1/recipes/generate", json=payload)

  assert response.status_code == 409
  assert "fixed-id" in response.json()["detail"]


@pytest.mark.anyio
async def test_invalid_payload_is_rejected_without_echoing_input(client: AsyncClient) -> None:
  response = await client.post("/v1/recipes/generate", json={"query": "", "subscription_tier": "platinum", "secret": "x"})

  assert response.status_code == 422
  body = response.json()
  assert body["requestId"]
  assert all("input" not in error for error in body["detail"])


@pytest.mark.anyio
async def test_missing_service_returns_503() -> None:
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as async_client:
    response = await async_client.get("/v1/recipes/generate/anything")

  assert response.status_code == 503
  assert response.json()["detail"] == "Recipe pipeline is not available."


@pytest.mark.anyio
async def test_health(client: AsyncClient) -> None:
  response = await client.get("/health")
  assert response.json()["status"] == "ok"


@pytest.mark.anyio
async def test_well_formed_gateway_request_id_is_echoed(client: AsyncClient) -> None:
  response = await client.get("/health", headers={"x-request-id": "gw-123.abc"})
  assert response.headers["x-request-id"] == "gw-123.abc"

  replaced = await client.get("/health", headers={"x-request-id": "bad id with spaces"})
  assert replaced.headers["x-request-id"] != "bad id with spaces"
