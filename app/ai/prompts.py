"""Prompt builders and response parsing for recipe content."""

from __future__ import annotations

import json
import re
from typing import Any

from app.ai.errors import ContentValidationError
from app.ai.json_parser import parse_json_with_fallback
from app.ai.pipeline.contracts import DEFAULT_SERVINGS, NutritionInfo, RecipeDraft, StepDraft, format_macro
from app.ai.providers.base import ImageQualityParams

JsonDict = dict[str, Any]

_TIER_PARAMS: dict[str, ImageQualityParams] = {
  "free": ImageQualityParams(quality="standard", size="1024x1024"),
  "basic": ImageQualityParams(quality="hd", size="1792x1024"),
  "premium": ImageQualityParams(quality="hd", size="1792x1024"),
}

_ILLUSTRATION_PREFIX = "illustration:"
_ILLUSTRATION_STYLE = (
  "The illustration should be bright, colorful, and child-friendly with a clean, simple style. "
  "It should focus only on the cooking step described, with good lighting and clear details. No text or captions in the image."
)

CONTENT_SYSTEM_PROMPT = (
  "You are a professional chef who writes clear, reliable home recipes. "
  "Respond with a single JSON object with keys: title, servings, ingredients (list of strings), "
  "steps (list of objects with text and illustration), nutrition (calories, protein, fat, carbs), "
  "prepTime, cookTime, totalTime (minutes)."
)

QUALITY_SYSTEM_PROMPT = "You are a professional chef and recipe critic who evaluates recipe quality. Provide honest, thorough evaluations."

ENHANCE_SYSTEM_PROMPT = "You are a professional chef and recipe editor who improves recipes. Maintain the original recipe intent while enhancing its clarity, completeness, and consistency."


def image_params_for_tier(tier: str | None) -> ImageQualityParams:
  """Map a subscription tier to image quality parameters, defaulting to free."""
  return _TIER_PARAMS.get((tier or "free").lower(), _TIER_PARAMS["free"])


def style_image_prompt(base_prompt: str) -> str:
  """Wrap an illustration description in the house cartoon style."""
  trimmed = base_prompt.strip()
  body = trimmed[len(_ILLUSTRATION_PREFIX) :].strip() if trimmed.lower().startswith(_ILLUSTRATION_PREFIX) else trimmed
  prefixed = body if "cartoon-style" in body.lower() else f"Cartoon-style illustration of {body}"
  return f"{prefixed}. {_ILLUSTRATION_STYLE}"


def build_step_image_prompt(title: str, step_index: int, illustration: str) -> str:
  """Build the per-step prompt from recipe title, 1-based step number and illustration text."""
  return f"Step {step_index + 1} for recipe '{title}': {illustration}"


def build_content_prompt(query: str, preferences: dict[str, Any] | None) -> str:
  lines = [f"Create a recipe for: {query.strip()}"]
  if preferences:
    lines.append(f"User preferences: {json.dumps(preferences, ensure_ascii=True, sort_keys=True)}")
  lines.append("Each step needs an 'illustration' describing a single visual for that step.")
  return "\n".join(lines)


def build_quality_prompt(draft: RecipeDraft) -> str:
  payload = _draft_payload(draft)
  return (
    "Assess this recipe for completeness, clarity, and consistency between ingredients and steps. "
    'Respond with JSON {"overall": <0-10>, "feedback": [<strings>]}.\n'
    f"{json.dumps(payload, ensure_ascii=True)}"
  )


def build_enhance_prompt(draft: RecipeDraft, feedback: list[str]) -> str:
  payload = _draft_payload(draft)
  notes = "\n".join(f"- {item}" for item in feedback) or "-"
  return (
    "Enhance this recipe. Keep the same number of steps and the same dish. "
    "Respond with the full recipe as JSON using the same keys.\n"
    f"Reviewer notes:\n{notes}\n"
    f"{json.dumps(payload, ensure_ascii=True)}"
  )


def _draft_payload(draft: RecipeDraft) -> JsonDict:
  return {
    "title": draft.title,
    "servings": draft.servings,
    "ingredients": list(draft.ingredients),
    "steps": [{"text": step.text, "illustration": step.illustration_prompt} for step in draft.steps],
    "nutrition": draft.nutrition.model_dump(),
    "prepTime": draft.prep_time,
    "cookTime": draft.cook_time,
    "totalTime": draft.total_time,
  }


def _first(data: JsonDict, *keys: str) -> Any:
  for key in keys:
    if key in data and data[key] is not None:
      return data[key]
  return None


_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_HOURS = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours|hour|hrs|hr|h)(?![a-z])", re.IGNORECASE)
_MINUTES = re.compile(r"(\d+(?:\.\d+)?)\s*(?:minutes|minute|mins|min|m)(?![a-z])", re.IGNORECASE)
_RANGE = re.compile(r"(\d+(?:\.\d+)?)\s*(?:-|\u2013|to)\s*\d+(?:\.\d+)?", re.IGNORECASE)
_THOUSANDS = re.compile(r"(?<=\d),(?=\d{3}\b)")
_ISO_DURATION = re.compile(r"^PT(?:(\d+(?:\.\d+)?)H)?(?:(\d+(?:\.\d+)?)M)?$", re.IGNORECASE)


def _parse_int(raw: Any) -> int | None:
  """Whole number from a number or the first number in a string ("4-6 servings" -> 4, "1,200 kcal" -> 1200)."""
  if raw is None or isinstance(raw, bool):
    return None
  if isinstance(raw, int | float):
    return int(round(raw)) if raw >= 0 else None
  match = _NUMBER.search(_THOUSANDS.sub("", str(raw)))
  return int(round(float(match.group()))) if match else None


def _parse_minutes(raw: Any) -> int | None:
  """Duration in minutes; ranges keep their lower bound, hours are converted."""
  if raw is None or isinstance(raw, bool) or isinstance(raw, int | float):
    return _parse_int(raw)
  text = _RANGE.sub(r"\1", str(raw).strip())
  iso = _ISO_DURATION.match(text)
  if iso and any(iso.groups()):
    hours, minutes = (float(part) if part else 0.0 for part in iso.groups())
    return int(round(hours * 60 + minutes))
  hours_match = _HOURS.search(text)
  if hours_match is None:
    return _parse_int(text)
  minutes_match = _MINUTES.search(text, hours_match.end())
  total = float(hours_match.group(1)) * 60 + (float(minutes_match.group(1)) if minutes_match else 0.0)
  return int(round(total))


def _parse_servings(raw: Any) -> int:
  value = _parse_int(raw)
  return value if value and value > 0 else DEFAULT_SERVINGS


def _parse_steps(raw: Any) -> list[StepDraft]:
  steps: list[StepDraft] = []
  if not isinstance(raw, list):
    return steps
  for item in raw:
    if isinstance(item, str):
      steps.append(StepDraft(text=item.strip(), illustration_prompt=item.strip()))
    elif isinstance(item, dict):
      text = str(_first(item, "text", "instruction", "description") or "").strip()
      illustration = str(_first(item, "illustration", "illustration_prompt", "illustrationPrompt", "image_prompt") or text).strip()
      steps.append(StepDraft(text=text, illustration_prompt=illustration))
  return steps


def _parse_nutrition(raw: Any) -> NutritionInfo:
  if not isinstance(raw, dict):
    return NutritionInfo()
  calories = _parse_int(raw.get("calories")) or 0
  return NutritionInfo(calories=calories, protein=format_macro(raw.get("protein")), fat=format_macro(raw.get("fat")), carbs=format_macro(_first(raw, "carbs", "carbohydrates")))


def parse_recipe_content(raw: str, *, base: RecipeDraft | None = None) -> RecipeDraft:
  """
  Parse model output into a validated RecipeDraft.

  When base is given, its identity fields (id, query, created_at, request_id)
  carry over so a rewritten draft keeps the same identity.
  Raises ContentValidationError on unparseable or unusable output.
  """
  try:
    data = parse_json_with_fallback(raw)
  except json.JSONDecodeError as exc:
    raise ContentValidationError(f"Recipe content is not valid JSON: {exc}") from exc
  if isinstance(data, dict) and isinstance(data.get("recipe"), dict):
    data = data["recipe"]
  if not isinstance(data, dict):
    raise ContentValidationError("Recipe content must be a JSON object.")

  ingredients_raw = data.get("ingredients")
  ingredients = [str(item).strip() for item in ingredients_raw if str(item).strip()] if isinstance(ingredients_raw, list) else []
  title = str(data.get("title") or "").strip()

  fields: JsonDict = {
    "title": title,
    "servings": _parse_servings(data.get("servings")),
    "ingredients": ingredients,
    "steps": _parse_steps(_first(data, "steps", "instructions")),
    "nutrition": _parse_nutrition(data.get("nutrition")),
    "prep_time": _parse_minutes(_first(data, "prepTime", "prep_time")),
    "cook_time": _parse_minutes(_first(data, "cookTime", "cook_time")),
    "total_time": _parse_minutes(_first(data, "totalTime", "total_time")),
  }
  if base is not None:
    draft = base.model_copy(update=fields, deep=True)
  else:
    draft = RecipeDraft(**fields)

  errors = draft.validation_errors()
  if errors:
    raise ContentValidationError(f"Recipe content failed validation: {'; '.join(errors)}", errors=errors)
  return draft
