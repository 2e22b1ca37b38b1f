"""Parent job for one recipe generation request."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any

from app.ai.errors import BestEffortError, FatalPipelineError
from app.ai.pipeline.contracts import GenerationRequest, PipelineResult, RecipeDraft, SimilarityResult, StepImageOutcome, StepImageTask
from app.ai.prompts import build_step_image_prompt, parse_recipe_content
from app.ai.providers.base import Categorizer, ContentGenerator
from app.ai.quality import QualityGate
from app.jobs.cancellation import CancellationRegistry, CancellationToken
from app.jobs.image_runner import ImageSubJobRunner
from app.jobs.models import JobPhase
from app.jobs.pool import WorkerPool
from app.jobs.progress import JobCanceledError, JobProgressTracker
from app.jobs.snapshots import SnapshotCache
from app.services.merge import MergeEngine
from app.services.similarity import DUPLICATE_THRESHOLD, best_match, draft_hash, title_hint
from app.storage.jobs_repo import JobsRepository
from app.storage.recipes_repo import RecipeRepository
from app.utils.ids import generate_recipe_id

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "Recipe generation failed due to an internal error."


class _Run:
  """Mutable state for one run."""

  def __init__(self, request: GenerationRequest, token: CancellationToken, tracker: JobProgressTracker) -> None:
    self.request = request
    self.token = token
    self.tracker = tracker
    self.draft: RecipeDraft | None = None
    self.similarity = SimilarityResult(is_duplicate=False, score=0.0)
    self.warnings: list[str] = []
    self.failed_steps: list[int] = []
    self.submitted = 0

  def warn(self, error: BestEffortError) -> None:
    logger.warning("[%s] phase=%s %s", self.request.request_id, self.tracker.phase, error)
    self.warnings.append(str(error))


class RecipeOrchestrator:
  """
  Drive a request through content, quality, categorization, duplicate
  detection, image fan-out and persistence.

  Every phase transition first checks the cancellation token. The
  duplicate check and the final write are not atomic; two concurrent
  near-identical requests can both be stored as new.
  """

  def __init__(
    self,
    *,
    content_generator: ContentGenerator,
    quality_gate: QualityGate,
    categorizer: Categorizer,
    repository: RecipeRepository,
    snapshots: SnapshotCache,
    cancellations: CancellationRegistry,
    jobs_repo: JobsRepository,
    image_pool: WorkerPool,
    image_runner: ImageSubJobRunner,
    duplicate_threshold: float = DUPLICATE_THRESHOLD,
    candidate_limit: int = 10,
  ) -> None:
    self._content_generator = content_generator
    self._quality_gate = quality_gate
    self._categorizer = categorizer
    self._repository = repository
    self._merge_engine = MergeEngine(repository)
    self._snapshots = snapshots
    self._cancellations = cancellations
    self._jobs_repo = jobs_repo
    self._image_pool = image_pool
    self._image_runner = image_runner
    self._duplicate_threshold = duplicate_threshold
    self._candidate_limit = candidate_limit

  async def run(self, request: GenerationRequest) -> PipelineResult:
    """Run the request to a terminal outcome; never raises for pipeline errors."""
    request_id = request.request_id
    run = _Run(request, self._cancellations.token(request_id), JobProgressTracker(request_id=request_id, jobs_repo=self._jobs_repo))
    try:
      return await self._execute(run)
    except JobCanceledError:
      logger.info("[%s] cancelled at phase=%s after %d image sub-jobs", request_id, run.tracker.phase, run.submitted)
      await self._finish(run, run.tracker.cancel(warnings=run.warnings))
      return PipelineResult(request_id=request_id, outcome="cancelled", draft=run.draft, warnings=run.warnings)
    except FatalPipelineError as exc:
      logger.error("[%s] failed at phase=%s: %s", request_id, run.tracker.phase, exc)
      await self._finish(run, run.tracker.fail(message=str(exc), warnings=run.warnings))
      return PipelineResult(request_id=request_id, outcome="failed", draft=run.draft, warnings=run.warnings, error=str(exc))
    except Exception:  # noqa: BLE001
      logger.error("[%s] unexpected error at phase=%s", request_id, run.tracker.phase, exc_info=True)
      await self._finish(run, run.tracker.fail(message=GENERIC_FAILURE, warnings=run.warnings))
      return PipelineResult(request_id=request_id, outcome="failed", draft=run.draft, warnings=run.warnings, error=GENERIC_FAILURE)
    finally:
      self._cancellations.cleanup(request_id)
      await self._snapshots.clear(request_id)

  @staticmethod
  async def _finish(run: _Run, write: Awaitable[Any]) -> None:
    # The outcome is already decided; a failing status write must not escape run().
    try:
      await write
    except Exception:  # noqa: BLE001
      logger.error("[%s] could not record terminal phase=%s", run.request.request_id, run.tracker.phase, exc_info=True)

  async def _enter(self, run: _Run, phase: JobPhase) -> None:
    await run.token.checkpoint()
    await run.tracker.set_phase(phase)

  async def _publish(self, run: _Run) -> None:
    if run.draft is None or not run.request.progressive_display or run.token.cancelled:
      return
    await self._snapshots.put(run.request.request_id, run.draft)

  async def _execute(self, run: _Run) -> PipelineResult:
    await self._generate_content(run)
    await self._check_quality(run)
    await self._categorize(run)
    await self._check_duplicates(run)
    handles = await self._fan_out(run)
    await self._aggregate(run, handles)
    return await self._persist(run)

  async def _generate_content(self, run: _Run) -> None:
    await self._enter(run, "generating_content")
    request = run.request
    try:
      raw = await self._content_generator.generate(request.query, request.user_preferences)
    except Exception as exc:  # noqa: BLE001
      raise FatalPipelineError(f"Content generation failed: {exc}", phase="generating_content") from exc
    draft = parse_recipe_content(raw)
    draft.query = request.query
    draft.request_id = request.request_id
    run.draft = draft
    logger.info("[%s] content generated recipe=%s steps=%d", request.request_id, draft.id, len(draft.steps))
    await self._publish(run)

  async def _check_quality(self, run: _Run) -> None:
    assert run.draft is not None
    await self._enter(run, "quality_check")
    score, error = await self._quality_gate.evaluate(run.draft)
    if error is not None:
      run.warn(error)
    run.draft.quality_score = score.overall
    if not self._quality_gate.needs_enhancement(score):
      return

    await self._enter(run, "enhancing")
    enhanced, error = await self._quality_gate.enhance(run.draft, score)
    if error is not None:
      run.warn(error)
    enhanced.quality_score = score.overall
    run.draft = enhanced
    await self._publish(run)

  async def _categorize(self, run: _Run) -> None:
    assert run.draft is not None
    await self._enter(run, "categorizing")
    try:
      categorization = self._categorizer.classify(run.draft)
    except Exception as exc:  # noqa: BLE001
      run.warn(BestEffortError("categorization", exc))
      return
    run.draft.category = categorization.category
    run.draft.tags = list(categorization.tags)

  async def _check_duplicates(self, run: _Run) -> None:
    assert run.draft is not None
    await self._enter(run, "duplicate_check")
    draft = run.draft
    draft.similarity_hash = draft_hash(draft)
    try:
      candidates = await self._repository.find_candidates(title_hint(draft.title), draft.similarity_hash, self._candidate_limit)
      run.similarity = best_match(draft, candidates, threshold=self._duplicate_threshold)
    except Exception as exc:  # noqa: BLE001
      run.warn(BestEffortError("duplicate lookup", exc))
      return
    if run.similarity.is_duplicate:
      logger.info("[%s] duplicate of %s score=%.3f", run.request.request_id, run.similarity.existing_recipe_id, run.similarity.score)
    await self._publish(run)

  async def _fan_out(self, run: _Run) -> list[tuple[int, asyncio.Future[StepImageOutcome]]]:
    assert run.draft is not None
    await self._enter(run, "fanning_out_images")
    draft = run.draft
    request = run.request
    tasks = [
      StepImageTask(
        recipe_id=draft.id,
        request_id=request.request_id,
        step_index=index,
        prompt=build_step_image_prompt(draft.title, index, step.illustration_prompt or step.text),
        subscription_tier=request.subscription_tier,
        progressive_display=request.progressive_display,
      )
      for index, step in enumerate(draft.steps)
    ]
    # Submit every task before waiting on any of them.
    handles: list[tuple[int, asyncio.Future[StepImageOutcome]]] = []
    for task in tasks:
      handles.append((task.step_index, self._image_pool.submit(lambda task=task: self._image_runner.execute(task))))
      run.submitted += 1
    await run.tracker.start_images(len(handles))
    logger.info("[%s] submitted %d image sub-jobs", request.request_id, len(handles))
    return handles

  async def _aggregate(self, run: _Run, handles: list[tuple[int, asyncio.Future[StepImageOutcome]]]) -> None:
    assert run.draft is not None
    await self._enter(run, "aggregating")

    async def _join(future: asyncio.Future[StepImageOutcome]) -> StepImageOutcome:
      try:
        return await future
      finally:
        await run.tracker.image_finished()

    results = await asyncio.gather(*(_join(future) for _, future in handles), return_exceptions=True)
    steps = run.draft.steps
    for (index, _), result in zip(handles, results, strict=True):
      if isinstance(result, BaseException):
        logger.error("[%s] image sub-job for step %d raised: %s", run.request.request_id, index, result)
        run.failed_steps.append(index)
      elif result.ok:
        steps[index].image_url = result.image_url
      else:
        logger.warning("[%s] step %d has no image (%s: %s)", run.request.request_id, index, result.failed_phase, result.error)
        run.failed_steps.append(index)
    if steps and steps[-1].image_url:
      run.draft.thumbnail_url = steps[-1].image_url

  async def _persist(self, run: _Run) -> PipelineResult:
    assert run.draft is not None
    await self._enter(run, "persisting")
    request = run.request
    draft = run.draft
    similarity = run.similarity

    record = draft
    duplicate_of: str | None = None
    try:
      if similarity.is_duplicate and similarity.existing_recipe_id:
        merged = await self._merge_engine.merge(draft, similarity.existing_recipe_id)
        if merged is None:
          run.warnings.append(f"Duplicate target {similarity.existing_recipe_id} no longer exists; stored as new.")
        else:
          record = merged
          duplicate_of = similarity.existing_recipe_id
      saved = await self._repository.upsert(record, None)
    except Exception as exc:  # noqa: BLE001
      raise FatalPipelineError(f"Failed to persist recipe: {exc}", phase="persisting") from exc

    owner_copy_id: str | None = None
    if request.caller_id and request.wants_persisted:
      owner_copy = saved.model_copy(update={"id": generate_recipe_id()}, deep=True)
      try:
        owner_copy_id = (await self._repository.upsert(owner_copy, request.caller_id)).id
      except Exception as exc:  # noqa: BLE001
        run.warn(BestEffortError("caller copy", exc))

    run.draft = saved
    await run.tracker.complete(
      message=f"Stored recipe {saved.id}",
      recipe_id=saved.id,
      owner_copy_id=owner_copy_id,
      duplicate_of=duplicate_of,
      similarity_score=similarity.score,
      warnings=run.warnings,
      failed_steps=sorted(run.failed_steps),
      result_json=saved.model_dump(mode="json"),
    )
    logger.info("[%s] completed recipe=%s duplicate_of=%s failed_steps=%s", request.request_id, saved.id, duplicate_of, run.failed_steps)
    return PipelineResult(
      request_id=request.request_id,
      outcome="completed",
      draft=saved,
      recipe_id=saved.id,
      owner_copy_id=owner_copy_id,
      duplicate_of=duplicate_of,
      similarity_score=similarity.score,
      warnings=run.warnings,
      failed_steps=sorted(run.failed_steps),
    )
