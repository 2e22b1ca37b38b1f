"""Shared FastAPI dependencies."""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status

from app.services.pipeline import RecipePipelineService


def get_pipeline_service(request: Request) -> RecipePipelineService:
  """Return the pipeline service built by the application lifespan."""
  service = getattr(request.app.state, "pipeline_service", None)
  if service is None:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Recipe pipeline is not available.")
  return service


def get_caller_id(x_user_id: str | None = Header(default=None, max_length=128)) -> str | None:
  """Caller identity forwarded by the gateway; absent for anonymous callers."""
  if x_user_id is None:
    return None
  value = x_user_id.strip()
  return value or None
