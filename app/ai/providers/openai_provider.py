"""OpenAI-backed content, quality and image collaborators."""

from __future__ import annotations

import json
import logging
from typing import Any

from openai import AsyncOpenAI

from app.ai.json_parser import parse_json_with_fallback
from app.ai.pipeline.contracts import QualityScore, RecipeDraft
from app.ai.prompts import CONTENT_SYSTEM_PROMPT, ENHANCE_SYSTEM_PROMPT, QUALITY_SYSTEM_PROMPT, build_content_prompt, build_enhance_prompt, build_quality_prompt, parse_recipe_content
from app.ai.providers.base import ImageQualityParams

logger = logging.getLogger("app.ai.providers.openai")


def build_openai_client(api_key: str | None) -> AsyncOpenAI:
  if not api_key:
    raise ValueError("OPENAI_API_KEY environment variable is required")
  return AsyncOpenAI(api_key=api_key)


async def _complete_json(client: AsyncOpenAI, model: str, system: str, prompt: str, *, temperature: float = 0.7) -> str:
  response = await client.chat.completions.create(
    model=model,
    messages=[{"role": "system", "content": system}, {"role": "user", "content": prompt}],
    response_format={"type": "json_object"},
    temperature=temperature,
  )
  content = response.choices[0].message.content or ""
  if response.usage:
    logger.info("OpenAI %s usage prompt=%s completion=%s", model, response.usage.prompt_tokens, response.usage.completion_tokens)
  return content


class OpenAIContentGenerator:
  """Generate recipe JSON from a query."""

  def __init__(self, client: AsyncOpenAI, model: str) -> None:
    self._client = client
    self._model = model

  async def generate(self, query: str, preferences: dict[str, Any] | None) -> str:
    content = await _complete_json(self._client, self._model, CONTENT_SYSTEM_PROMPT, build_content_prompt(query, preferences))
    logger.debug("OpenAI recipe response:\n%s", content)
    return content


class OpenAIQualityEvaluator:
  def __init__(self, client: AsyncOpenAI, model: str, *, threshold: float = 7.0) -> None:
    self._client = client
    self._model = model
    self._threshold = threshold

  async def score(self, draft: RecipeDraft) -> QualityScore:
    content = await _complete_json(self._client, self._model, QUALITY_SYSTEM_PROMPT, build_quality_prompt(draft), temperature=0.2)
    try:
      data = parse_json_with_fallback(content)
    except json.JSONDecodeError as e:
      raise RuntimeError(f"OpenAI returned invalid JSON: {e}") from e
    if not isinstance(data, dict):
      raise RuntimeError("Quality evaluation response must be a JSON object.")
    raw_score = data.get("overall", data.get("score"))
    if raw_score is None:
      raise RuntimeError("Quality evaluation response is missing an overall score.")
    feedback = data.get("feedback") or data.get("suggestions") or []
    if isinstance(feedback, str):
      feedback = [feedback]
    return QualityScore(overall=float(raw_score), passing_threshold=self._threshold, feedback=[str(item) for item in feedback])


class OpenAIQualityEnhancer:
  def __init__(self, client: AsyncOpenAI, model: str) -> None:
    self._client = client
    self._model = model

  async def improve(self, draft: RecipeDraft, score: QualityScore) -> RecipeDraft:
    content = await _complete_json(self._client, self._model, ENHANCE_SYSTEM_PROMPT, build_enhance_prompt(draft, score.feedback))
    return parse_recipe_content(content, base=draft)


class OpenAIImageProvider:
  """Generate step images; returns the provider's temporary URL."""

  def __init__(self, client: AsyncOpenAI, model: str) -> None:
    self._client = client
    self._model = model

  async def generate(self, prompt: str, quality_params: ImageQualityParams) -> str:
    response = await self._client.images.generate(model=self._model, prompt=prompt, n=1, quality=quality_params.quality, size=quality_params.size)
    if not response.data or not response.data[0].url:
      raise RuntimeError("Image provider returned no URL.")
    return response.data[0].url
