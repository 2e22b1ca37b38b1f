"""Fold a freshly generated recipe into an existing canonical record."""

from __future__ import annotations

import logging

from app.ai.pipeline.contracts import RecipeDraft, StepDraft
from app.services.similarity import draft_hash, normalize_ingredient
from app.storage.recipes_repo import RecipeRepository

logger = logging.getLogger(__name__)


def _merge_title(new_title: str, existing_title: str) -> str:
  # Ties favour the existing record.
  return new_title if len(new_title) > len(existing_title) else existing_title


def merge_ingredients(existing: list[str], new: list[str]) -> list[str]:
  """Union by normalised form keeping the longest original wording, in first-appearance order."""
  order: list[str] = []
  chosen: dict[str, str] = {}
  for ingredient in [*existing, *new]:
    key = normalize_ingredient(ingredient) or ingredient.strip().lower()
    if not key:
      continue
    if key not in chosen:
      order.append(key)
      chosen[key] = ingredient
    elif len(ingredient) > len(chosen[key]):
      chosen[key] = ingredient
  return [chosen[key] for key in order]


def _merge_minutes(new_value: int | None, existing_value: int | None) -> int | None:
  if new_value is not None and existing_value is not None:
    # Round half up so the result does not depend on banker's rounding.
    return int((new_value + existing_value) / 2 + 0.5)
  if existing_value is not None:
    return existing_value
  return new_value


def _thumbnail(steps: list[StepDraft], fallback: str | None) -> str | None:
  if steps and steps[-1].image_url:
    return steps[-1].image_url
  return fallback


def _max_score(left: float | None, right: float | None) -> float | None:
  scores = [score for score in (left, right) if score is not None]
  return max(scores) if scores else None


def merge_recipes(new: RecipeDraft, existing: RecipeDraft) -> RecipeDraft:
  """
  Combine two recipes into one record stored under the existing id.

  The result depends only on the two inputs. Servings, creation time and id
  always come from the existing record.
  """
  steps_source = new if len(new.steps) > len(existing.steps) else existing
  steps = [step.model_copy() for step in steps_source.steps]

  if existing.nutrition.is_populated():
    nutrition = existing.nutrition
  elif new.nutrition.is_populated():
    nutrition = new.nutrition
  else:
    nutrition = existing.nutrition

  merged = existing.model_copy(
    update={
      "title": _merge_title(new.title, existing.title),
      "ingredients": merge_ingredients(existing.ingredients, new.ingredients),
      "steps": steps,
      "nutrition": nutrition.model_copy(),
      "prep_time": _merge_minutes(new.prep_time, existing.prep_time),
      "cook_time": _merge_minutes(new.cook_time, existing.cook_time),
      "total_time": _merge_minutes(new.total_time, existing.total_time),
      "category": existing.category or new.category,
      "tags": list(existing.tags) if existing.tags else list(new.tags),
      "quality_score": _max_score(new.quality_score, existing.quality_score),
      "thumbnail_url": _thumbnail(steps, existing.thumbnail_url),
    },
    deep=True,
  )
  merged.similarity_hash = draft_hash(merged)
  logger.info("Merged recipe draft=%s into existing=%s (steps from %s)", new.id, existing.id, "new" if steps_source is new else "existing")
  return merged


class MergeEngine:
  """Resolve the existing record and fold a new draft into it."""

  def __init__(self, repository: RecipeRepository) -> None:
    self._repository = repository

  async def merge(self, new: RecipeDraft, existing_id: str) -> RecipeDraft | None:
    """Return the merged record under existing_id, or None when that record no longer exists."""
    existing = await self._repository.get(existing_id)
    if existing is None:
      logger.warning("Merge target %s vanished; draft %s will be stored as new", existing_id, new.id)
      return None
    return merge_recipes(new, existing)
