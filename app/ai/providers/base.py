"""Collaborator interfaces consumed by the recipe pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from app.ai.pipeline.contracts import Categorization, QualityScore, RecipeDraft


@dataclass(frozen=True)
class ImageQualityParams:
  """Provider parameters derived from the caller's subscription tier."""

  quality: str
  size: str


class ContentGenerator(Protocol):
  """Produce raw recipe text (JSON) for a natural-language query."""

  async def generate(self, query: str, preferences: dict[str, Any] | None) -> str:
    """Return the model's raw response body."""


class ImageProvider(Protocol):
  """Produce a temporary image URL for a prompt."""

  async def generate(self, prompt: str, quality_params: ImageQualityParams) -> str:
    """Return a short-lived URL pointing at the generated image."""


class QualityEvaluator(Protocol):
  async def score(self, draft: RecipeDraft) -> QualityScore:
    """Return an overall 0-10 score for the draft."""


class QualityEnhancer(Protocol):
  async def improve(self, draft: RecipeDraft, score: QualityScore) -> RecipeDraft:
    """Return an improved draft that keeps the original id."""


class Categorizer(Protocol):
  def classify(self, draft: RecipeDraft) -> Categorization:
    """Return a category plus up to three tags."""
