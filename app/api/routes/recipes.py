import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.deps import get_caller_id, get_pipeline_service
from app.api.models import CancelResponse, GenerateRecipeRequest, GenerateRecipeResponse, GenerationStatusResponse
from app.services.pipeline import DuplicateRequestError, RecipePipelineService

router = APIRouter()
logger = logging.getLogger("app.api.routes.recipes")


@router.post("/generate", response_model=GenerateRecipeResponse, status_code=status.HTTP_202_ACCEPTED)
async def generate_recipe(  # noqa: B008
  payload: GenerateRecipeRequest,
  caller_id: str | None = Depends(get_caller_id),  # noqa: B008
  service: RecipePipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> GenerateRecipeResponse:
  """Queue a recipe generation request."""
  try:
    request_id = await service.submit(payload.query, payload.preferences, payload.subscription_tier, caller_id, payload.persist, progressive_display=payload.progressive_display, request_id=payload.request_id)
  except DuplicateRequestError as exc:
    raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
  return GenerateRecipeResponse(request_id=request_id)


@router.get("/generate/{request_id}", response_model=GenerationStatusResponse)
async def get_generation_status(  # noqa: B008
  request_id: str,
  service: RecipePipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> GenerationStatusResponse:
  """Poll the phase, progress and partial recipe of a request."""
  result = await service.get_status(request_id)
  return GenerationStatusResponse(**asdict(result))


@router.post("/generate/{request_id}/cancel", response_model=CancelResponse)
async def cancel_generation(  # noqa: B008
  request_id: str,
  service: RecipePipelineService = Depends(get_pipeline_service),  # noqa: B008
) -> CancelResponse:
  """Request cooperative cancellation of a running request."""
  result = await service.cancel(request_id)
  logger.info("Cancel request_id=%s accepted=%s", request_id, result.accepted)
  return CancelResponse(request_id=result.request_id, accepted=result.accepted)
