"""Shared data contracts for the recipe generation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from app.utils.ids import generate_recipe_id, generate_request_id

SubscriptionTier = Literal["free", "basic", "premium"]
PipelineOutcome = Literal["completed", "failed", "cancelled"]

DEFAULT_TITLE = "Untitled Recipe"
DEFAULT_SERVINGS = 4


def _utcnow() -> datetime:
  return datetime.now(UTC)


class GenerationRequest(BaseModel):
  """Inputs for a recipe generation request."""

  request_id: str = Field(default_factory=generate_request_id)
  query: str = Field(min_length=1)
  user_preferences: dict[str, Any] | None = None
  caller_id: str | None = None
  wants_persisted: bool = False
  subscription_tier: SubscriptionTier = "free"
  progressive_display: bool = True


class NutritionInfo(BaseModel):
  """Per-serving nutrition; macros carry a unit suffix such as "12g"."""

  calories: int = 0
  protein: str = "0g"
  fat: str = "0g"
  carbs: str = "0g"

  def is_populated(self) -> bool:
    """Return True when all four fields are set and non-zero."""
    if self.calories <= 0:
      return False
    return all(_macro_amount(value) > 0 for value in (self.protein, self.fat, self.carbs))


def _macro_amount(value: str) -> float:
  digits = "".join(char for char in value if char.isdigit() or char == ".")
  try:
    return float(digits) if digits else 0.0
  except ValueError:
    return 0.0


def format_macro(value: Any) -> str:
  """Normalize a macro value to a gram string."""
  if value is None:
    return "0g"
  if isinstance(value, int | float):
    amount = round(float(value), 1)
    return f"{int(amount) if amount.is_integer() else amount}g"
  text = str(value).strip()
  if not text:
    return "0g"
  if text[-1].isdigit():
    return f"{text}g"
  return text


class StepDraft(BaseModel):
  """One recipe step; image_url stays null until its sub-job succeeds."""

  text: str
  illustration_prompt: str = ""
  image_url: str | None = None


class RecipeDraft(BaseModel):
  """Evolving recipe owned by one generation run."""

  id: str = Field(default_factory=generate_recipe_id)
  title: str = DEFAULT_TITLE
  servings: int = DEFAULT_SERVINGS
  ingredients: list[str] = Field(default_factory=list)
  steps: list[StepDraft] = Field(default_factory=list)
  nutrition: NutritionInfo = Field(default_factory=NutritionInfo)
  prep_time: int | None = None
  cook_time: int | None = None
  total_time: int | None = None
  category: str | None = None
  tags: list[str] = Field(default_factory=list)
  quality_score: float | None = None
  similarity_hash: str | None = None
  thumbnail_url: str | None = None
  query: str | None = None
  created_at: datetime = Field(default_factory=_utcnow)
  request_id: str | None = None

  def validation_errors(self) -> list[str]:
    """Return shape problems that make the draft unusable."""
    errors: list[str] = []
    if not self.title.strip():
      errors.append("title is empty")
    if not any(item.strip() for item in self.ingredients):
      errors.append("at least one ingredient is required")
    if not self.steps:
      errors.append("at least one step is required")
    elif any(not step.text.strip() for step in self.steps):
      errors.append("every step needs text")
    return errors


class StepImageTask(BaseModel):
  """One step's image sub-job."""

  recipe_id: str
  request_id: str
  step_index: int = Field(ge=0)
  prompt: str
  subscription_tier: SubscriptionTier = "free"
  progressive_display: bool = True


@dataclass(frozen=True)
class StepImageOutcome:
  """Result of one image sub-job: exactly one of image_url or error is set."""

  step_index: int
  image_url: str | None = None
  error: str | None = None
  failed_phase: str | None = None

  @property
  def ok(self) -> bool:
    return self.image_url is not None


@dataclass(frozen=True)
class SimilarityResult:
  """Outcome of comparing a draft against stored candidates."""

  is_duplicate: bool
  score: float
  existing_recipe_id: str | None = None
  title: float = 0.0
  ingredients: float = 0.0
  steps: float = 0.0


@dataclass(frozen=True)
class QualityScore:
  overall: float
  passing_threshold: float = 7.0
  feedback: list[str] = field(default_factory=list)

  @property
  def passing(self) -> bool:
    return self.overall >= self.passing_threshold


@dataclass(frozen=True)
class Categorization:
  category: str
  tags: tuple[str, ...] = ()


@dataclass
class PipelineResult:
  """Terminal outcome of one orchestrator run."""

  request_id: str
  outcome: PipelineOutcome
  draft: RecipeDraft | None = None
  recipe_id: str | None = None
  owner_copy_id: str | None = None
  duplicate_of: str | None = None
  similarity_score: float | None = None
  warnings: list[str] = field(default_factory=list)
  error: str | None = None
  failed_steps: list[int] = field(default_factory=list)
