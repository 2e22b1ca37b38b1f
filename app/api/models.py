"""Request and response models for the HTTP surface."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

from app.ai.pipeline.contracts import RecipeDraft

StatusPhase = Literal[
  "queued",
  "generating_content",
  "quality_check",
  "enhancing",
  "categorizing",
  "duplicate_check",
  "fanning_out_images",
  "aggregating",
  "persisting",
  "completed",
  "failed",
  "cancelled",
  "unknown",
]


class GenerateRecipeRequest(BaseModel):
  """Payload for requesting a new recipe."""

  query: StrictStr = Field(min_length=1, max_length=500)
  preferences: dict[str, Any] | None = None
  subscription_tier: Literal["free", "basic", "premium"] = "free"
  persist: bool = False
  progressive_display: bool = True
  request_id: StrictStr | None = Field(default=None, min_length=1, max_length=128)
  model_config = ConfigDict(extra="forbid")


class GenerateRecipeResponse(BaseModel):
  request_id: StrictStr
  phase: StatusPhase = "queued"


class GenerationStatusResponse(BaseModel):
  """Status payload for a generation request."""

  request_id: StrictStr
  phase: StatusPhase
  progress_percent: float
  partial_draft: RecipeDraft | None = None
  recipe_id: StrictStr | None = None
  owner_copy_id: StrictStr | None = None
  duplicate_of: StrictStr | None = None
  similarity_score: float | None = None
  total_images: int | None = None
  completed_images: int | None = None
  failed_steps: list[int] = Field(default_factory=list)
  warnings: list[str] = Field(default_factory=list)
  error: StrictStr | None = None
  created_at: StrictStr | None = None
  updated_at: StrictStr | None = None


class CancelResponse(BaseModel):
  request_id: StrictStr
  accepted: bool
