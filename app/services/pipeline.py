"""Caller-facing submit/status/cancel facade over the recipe pipeline."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from app.ai.categorizer import KeywordCategorizer
from app.ai.orchestrator import RecipeOrchestrator
from app.ai.pipeline.contracts import GenerationRequest, PipelineResult, RecipeDraft, SubscriptionTier
from app.ai.providers.openai_provider import OpenAIContentGenerator, OpenAIImageProvider, OpenAIQualityEnhancer, OpenAIQualityEvaluator, build_openai_client
from app.ai.quality import QualityGate
from app.config import Settings
from app.core.database import Database
from app.jobs.cancellation import CancellationRegistry
from app.jobs.image_runner import ImageSubJobRunner
from app.jobs.models import JobRecord
from app.jobs.pool import WorkerPool
from app.jobs.snapshots import SnapshotCache
from app.services.downloader import HttpxImageDownloader
from app.services.storage_client import BlobStore, build_storage_client
from app.storage.jobs_repo import InMemoryJobsRepository, JobsRepository
from app.storage.postgres_jobs_repo import PostgresJobsRepository
from app.storage.postgres_recipes_repo import PostgresRecipeRepository
from app.storage.postgres_snapshot_store import PostgresSnapshotStore
from app.storage.recipes_repo import InMemoryRecipeRepository, RecipeRepository
from app.utils.ids import generate_request_id

logger = logging.getLogger(__name__)


class DuplicateRequestError(ValueError):
  """Raised when a caller-supplied request id is already in use."""


@dataclass
class GenerationStatus:
  """Well-formed status for any request id, known or not."""

  request_id: str
  phase: str
  progress_percent: float
  partial_draft: RecipeDraft | None = None
  recipe_id: str | None = None
  owner_copy_id: str | None = None
  duplicate_of: str | None = None
  similarity_score: float | None = None
  total_images: int | None = None
  completed_images: int | None = None
  failed_steps: list[int] = field(default_factory=list)
  warnings: list[str] = field(default_factory=list)
  error: str | None = None
  created_at: str | None = None
  updated_at: str | None = None


@dataclass(frozen=True)
class CancelResult:
  request_id: str
  accepted: bool


def _now_iso() -> str:
  return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


class RecipePipelineService:
  """
  Own the orchestrator and image pools, the job status store and the
  per-request lifecycle.

  Pools are disjoint so a burst of image sub-jobs never delays another
  request's content generation.
  """

  def __init__(self, *, orchestrator: RecipeOrchestrator, orchestrator_pool: WorkerPool, image_pool: WorkerPool, jobs_repo: JobsRepository, snapshots: SnapshotCache, cancellations: CancellationRegistry, closers: list[Any] | None = None) -> None:
    self._orchestrator = orchestrator
    self._orchestrator_pool = orchestrator_pool
    self._image_pool = image_pool
    self._jobs_repo = jobs_repo
    self._snapshots = snapshots
    self._cancellations = cancellations
    self._closers = list(closers or [])
    self._inflight: dict[str, asyncio.Future[PipelineResult]] = {}

  def start(self) -> None:
    self._orchestrator_pool.start()
    self._image_pool.start()

  async def shutdown(self) -> None:
    """Stop accepting work, drain both pools and close owned clients."""
    await self._orchestrator_pool.shutdown(drain=True)
    await self._image_pool.shutdown(drain=True)
    for closer in self._closers:
      try:
        await closer()
      except Exception:  # noqa: BLE001
        logger.error("Failed to close pipeline resource during shutdown.", exc_info=True)

  async def submit(
    self,
    query: str,
    preferences: dict[str, Any] | None = None,
    tier: SubscriptionTier = "free",
    owner_id: str | None = None,
    persist: bool = False,
    *,
    progressive_display: bool = True,
    request_id: str | None = None,
  ) -> str:
    """Queue a generation request and return its id."""
    request_id = request_id or generate_request_id()
    if request_id in self._inflight or await self._jobs_repo.get_job(request_id) is not None:
      raise DuplicateRequestError(f"Request id {request_id} is already in use.")

    request = GenerationRequest(request_id=request_id, query=query, user_preferences=preferences, caller_id=owner_id, wants_persisted=persist, subscription_tier=tier, progressive_display=progressive_display)
    now = _now_iso()
    await self._jobs_repo.create_job(JobRecord(request_id=request_id, caller_id=owner_id, request=request.model_dump(mode="json"), phase="queued", created_at=now, updated_at=now))
    self._cancellations.register(request_id)

    future = self._orchestrator_pool.submit(lambda: self._orchestrator.run(request))
    self._inflight[request_id] = future
    future.add_done_callback(lambda done: self._on_done(request_id, done))
    logger.info("Queued request %s tier=%s persist=%s", request_id, tier, persist)
    return request_id

  def _on_done(self, request_id: str, future: asyncio.Future[PipelineResult]) -> None:
    self._inflight.pop(request_id, None)
    # Runs dropped by a pool shutdown never reach the orchestrator cleanup.
    self._cancellations.cleanup(request_id)
    if future.cancelled():
      logger.warning("Request %s was dropped before completion", request_id)
      return
    exc = future.exception()
    if exc is not None:
      logger.error("Request %s crashed outside the orchestrator: %s", request_id, exc)
      return
    result = future.result()
    logger.info("Request %s finished outcome=%s", request_id, result.outcome)

  async def wait(self, request_id: str) -> PipelineResult | None:
    """Await an in-flight request; None when it is not in flight."""
    future = self._inflight.get(request_id)
    if future is None:
      return None
    return await asyncio.shield(future)

  async def _snapshot(self, request_id: str) -> RecipeDraft | None:
    try:
      return await self._snapshots.get(request_id)
    except ValidationError:
      logger.warning("Discarding malformed snapshot for %s", request_id, exc_info=True)
      return None

  async def get_status(self, request_id: str) -> GenerationStatus:
    job = await self._jobs_repo.get_job(request_id)
    if job is None:
      return GenerationStatus(request_id=request_id, phase="unknown", progress_percent=0.0, partial_draft=await self._snapshot(request_id))

    if job.is_terminal:
      partial = RecipeDraft.model_validate(job.result_json) if job.result_json else None
    else:
      partial = await self._snapshot(request_id)
    return GenerationStatus(
      request_id=request_id,
      phase=job.phase,
      progress_percent=job.progress_percent,
      partial_draft=partial,
      recipe_id=job.recipe_id,
      owner_copy_id=job.owner_copy_id,
      duplicate_of=job.duplicate_of,
      similarity_score=job.similarity_score,
      total_images=job.total_images,
      completed_images=job.completed_images,
      failed_steps=list(job.failed_steps),
      warnings=list(job.warnings),
      error=job.error,
      created_at=job.created_at,
      updated_at=job.updated_at,
    )

  async def cancel(self, request_id: str) -> CancelResult:
    """
    Flag a queued or running request as cancelled.

    The flag is set locally and on the shared job record, so the process
    running the request observes it at its next phase boundary. Only ids
    with no live job get their lingering snapshot cleared.
    """
    self._cancellations.cancel(request_id)
    job = await self._jobs_repo.get_job(request_id)
    if job is not None and not job.is_terminal:
      if not job.cancel_requested:
        await self._jobs_repo.update_job(request_id, cancel_requested=True, updated_at=_now_iso())
      logger.info("Cancel accepted for %s at phase=%s", request_id, job.phase)
      return CancelResult(request_id=request_id, accepted=True)
    await self._snapshots.clear(request_id)
    return CancelResult(request_id=request_id, accepted=False)


def build_pipeline_service(
  settings: Settings,
  database: Database | None,
  *,
  blob_store: BlobStore | None = None,
) -> RecipePipelineService:
  """Wire adapters, stores and pools for one process."""
  openai_client = build_openai_client(settings.openai_api_key)
  closers: list[Any] = [openai_client.close]
  content_generator = OpenAIContentGenerator(openai_client, settings.content_model)
  image_provider = OpenAIImageProvider(openai_client, settings.image_model)
  quality_gate = QualityGate(OpenAIQualityEvaluator(openai_client, settings.content_model, threshold=settings.quality_threshold), OpenAIQualityEnhancer(openai_client, settings.content_model), threshold=settings.quality_threshold)

  repository: RecipeRepository
  jobs_repo: JobsRepository
  if database is not None:
    repository = PostgresRecipeRepository(database.session_factory)
    jobs_repo = PostgresJobsRepository(database.session_factory)
    snapshots = SnapshotCache(PostgresSnapshotStore(database.session_factory), ttl_seconds=settings.snapshot_ttl_seconds)
  else:
    logger.warning("No database configured; recipes, jobs and snapshots are kept in memory.")
    repository = InMemoryRecipeRepository()
    jobs_repo = InMemoryJobsRepository(terminal_retention=settings.terminal_job_retention)
    snapshots = SnapshotCache(None, ttl_seconds=settings.snapshot_ttl_seconds)

  downloader = HttpxImageDownloader(timeout_seconds=settings.image_download_timeout_seconds)
  closers.append(downloader.aclose)
  cancellations = CancellationRegistry(ttl_seconds=settings.cancellation_ttl_seconds, shared=jobs_repo)
  orchestrator_pool = WorkerPool("recipe", settings.orchestrator_concurrency)
  image_pool = WorkerPool("image", settings.image_concurrency)
  runner = ImageSubJobRunner(
    provider=image_provider,
    downloader=downloader,
    blob_store=blob_store or build_storage_client(settings),
    snapshots=snapshots,
    cancellations=cancellations,
    attempts=settings.image_phase_attempts,
    base_seconds=settings.image_retry_base_seconds,
  )
  orchestrator = RecipeOrchestrator(
    content_generator=content_generator,
    quality_gate=quality_gate,
    categorizer=KeywordCategorizer(),
    repository=repository,
    snapshots=snapshots,
    cancellations=cancellations,
    jobs_repo=jobs_repo,
    image_pool=image_pool,
    image_runner=runner,
    duplicate_threshold=settings.duplicate_threshold,
    candidate_limit=settings.duplicate_candidate_limit,
  )
  return RecipePipelineService(orchestrator=orchestrator, orchestrator_pool=orchestrator_pool, image_pool=image_pool, jobs_repo=jobs_repo, snapshots=snapshots, cancellations=cancellations, closers=closers)
