"""Shared fixtures and in-memory collaborators for the recipe pipeline tests."""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from unittest.mock import AsyncMock

import pytest

from app.ai.categorizer import KeywordCategorizer
from app.ai.orchestrator import RecipeOrchestrator
from app.ai.pipeline.contracts import QualityScore, RecipeDraft
from app.ai.providers.base import ImageQualityParams
from app.ai.quality import QualityGate
from app.jobs.cancellation import CancellationRegistry
from app.jobs.image_runner import ImageSubJobRunner
from app.jobs.pool import WorkerPool
from app.jobs.snapshots import SnapshotCache
from app.services.pipeline import RecipePipelineService
from app.storage.jobs_repo import InMemoryJobsRepository
from app.storage.recipes_repo import InMemoryRecipeRepository

PIZZA = {
  "title": "Classic Margherita Pizza",
  "servings": 4,
  "ingredients": ["500 g pizza dough", "1 cup tomato sauce", "200 g fresh mozzarella, sliced", "8 fresh basil leaves", "2 tbsp olive oil"],
  "steps": [
    {"text": "Preheat the oven to 250C with a pizza stone inside.", "illustration": "an oven with a pizza stone"},
    {"text": "Stretch the dough into a thin round base.", "illustration": "hands stretching pizza dough"},
    {"text": "Spread tomato sauce and arrange mozzarella slices on top.", "illustration": "sauce and mozzarella on dough"},
    {"text": "Bake until the crust is golden, then scatter basil leaves.", "illustration": "a baked pizza with basil"},
  ],
  "nutrition": {"calories": 650, "protein": "24g", "fat": "22g", "carbs": "80g"},
  "prepTime": 20,
  "cookTime": 12,
  "totalTime": 32,
}


def recipe_json(**overrides: Any) -> str:
  payload = dict(PIZZA)
  payload.update(overrides)
  return json.dumps(payload)


def make_draft(**overrides: Any) -> RecipeDraft:
  from app.ai.prompts import parse_recipe_content

  draft = parse_recipe_content(recipe_json())
  return draft.model_copy(update=overrides, deep=True)


@pytest.fixture
def anyio_backend():
  return "asyncio"


class FakeContentGenerator:
  def __init__(self, raw: str | None = None, *, error: Exception | None = None, on_call: Callable[[], None] | None = None) -> None:
    self.raw = raw if raw is not None else recipe_json()
    self.error = error
    self.on_call = on_call
    self.calls: list[tuple[str, dict[str, Any] | None]] = []

  async def generate(self, query: str, preferences: dict[str, Any] | None) -> str:
    self.calls.append((query, preferences))
    if self.on_call is not None:
      self.on_call()
    if self.error is not None:
      raise self.error
    return self.raw


class FakeImageProvider:
  """Returns a temporary URL per prompt; steps listed in fail_steps always fail."""

  def __init__(self, *, fail_steps: set[int] | None = None) -> None:
    self.fail_steps = fail_steps or set()
    self.calls: list[tuple[str, ImageQualityParams]] = []

  async def generate(self, prompt: str, quality_params: ImageQualityParams) -> str:
    self.calls.append((prompt, quality_params))
    for step_index in self.fail_steps:
      if f"Step {step_index + 1} for recipe" in prompt:
        raise RuntimeError(f"provider rejected step {step_index}")
    return f"https://provider.example/tmp/{len(self.calls)}.png"


class FakeDownloader:
  def __init__(self) -> None:
    self.calls: list[str] = []

  async def download(self, url: str) -> bytes:
    self.calls.append(url)
    return b"\x89PNG fake"


class FakeBlobStore:
  def __init__(self) -> None:
    self.uploads: dict[str, bytes] = {}

  async def upload(self, data: bytes, path: str, content_type: str) -> str:
    self.uploads[path] = data
    return f"https://cdn.example/{path}"


class FakeEvaluator:
  def __init__(self, overall: float = 8.5, *, error: Exception | None = None) -> None:
    self.overall = overall
    self.error = error
    self.calls = 0

  async def score(self, draft: RecipeDraft) -> QualityScore:
    self.calls += 1
    if self.error is not None:
      raise self.error
    return QualityScore(overall=self.overall, feedback=["add resting time"])


class FakeEnhancer:
  def __init__(self, *, error: Exception | None = None, drop_steps: bool = False) -> None:
    self.error = error
    self.drop_steps = drop_steps
    self.calls = 0

  async def improve(self, draft: RecipeDraft, score: QualityScore) -> RecipeDraft:
    self.calls += 1
    if self.error is not None:
      raise self.error
    update: dict[str, Any] = {"id": "enhancer-should-not-win", "title": f"{draft.title} (Improved)"}
    if self.drop_steps:
      update["steps"] = []
    return draft.model_copy(update=update, deep=True)


@dataclass
class Harness:
  """Pipeline wired entirely from in-memory collaborators."""

  content: FakeContentGenerator = field(default_factory=FakeContentGenerator)
  images: FakeImageProvider = field(default_factory=FakeImageProvider)
  downloader: FakeDownloader = field(default_factory=FakeDownloader)
  blobs: FakeBlobStore = field(default_factory=FakeBlobStore)
  evaluator: FakeEvaluator = field(default_factory=FakeEvaluator)
  enhancer: FakeEnhancer = field(default_factory=FakeEnhancer)
  repository: InMemoryRecipeRepository = field(default_factory=InMemoryRecipeRepository)
  jobs_repo: InMemoryJobsRepository = field(default_factory=InMemoryJobsRepository)
  snapshots: SnapshotCache = field(default_factory=SnapshotCache)
  cancellations: CancellationRegistry = field(default=None)  # type: ignore[assignment]
  sleep: AsyncMock = field(default_factory=AsyncMock)
  image_pool: WorkerPool = field(default_factory=lambda: WorkerPool("image-test", 3))
  recipe_pool: WorkerPool = field(default_factory=lambda: WorkerPool("recipe-test", 2))

  def __post_init__(self) -> None:
    if self.cancellations is None:
      self.cancellations = CancellationRegistry(shared=self.jobs_repo)
    self.runner = ImageSubJobRunner(provider=self.images, downloader=self.downloader, blob_store=self.blobs, snapshots=self.snapshots, cancellations=self.cancellations, sleep=self.sleep)
    self.orchestrator = RecipeOrchestrator(
      content_generator=self.content,
      quality_gate=QualityGate(self.evaluator, self.enhancer),
      categorizer=KeywordCategorizer(),
      repository=self.repository,
      snapshots=self.snapshots,
      cancellations=self.cancellations,
      jobs_repo=self.jobs_repo,
      image_pool=self.image_pool,
      image_runner=self.runner,
    )
    self.service = RecipePipelineService(orchestrator=self.orchestrator, orchestrator_pool=self.recipe_pool, image_pool=self.image_pool, jobs_repo=self.jobs_repo, snapshots=self.snapshots, cancellations=self.cancellations)

  async def shutdown(self) -> None:
    await self.service.shutdown()


@pytest.fixture
def harness() -> Harness:
  return Harness()
