"""Evaluate-then-enhance-once quality gate."""

from __future__ import annotations

import logging

from app.ai.errors import BestEffortError
from app.ai.pipeline.contracts import QualityScore, RecipeDraft
from app.ai.providers.base import QualityEnhancer, QualityEvaluator

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 7.0
# Used when evaluation fails; sits below the threshold so one enhancement is attempted.
FALLBACK_SCORE = 5.0


class QualityGate:
  """Score a draft and, below threshold, run a single enhancement pass."""

  def __init__(self, evaluator: QualityEvaluator, enhancer: QualityEnhancer, *, threshold: float = DEFAULT_THRESHOLD, fallback_score: float = FALLBACK_SCORE) -> None:
    self._evaluator = evaluator
    self._enhancer = enhancer
    self._threshold = threshold
    self._fallback_score = fallback_score

  @property
  def threshold(self) -> float:
    return self._threshold

  async def evaluate(self, draft: RecipeDraft) -> tuple[QualityScore, BestEffortError | None]:
    """Return the evaluation, or the fallback score and the error when evaluation fails."""
    try:
      result = await self._evaluator.score(draft)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Quality evaluation failed for recipe %s: %s", draft.id, exc)
      return QualityScore(overall=self._fallback_score, passing_threshold=self._threshold), BestEffortError("quality evaluation", exc)
    overall = min(max(float(result.overall), 0.0), 10.0)
    return QualityScore(overall=overall, passing_threshold=self._threshold, feedback=list(result.feedback)), None

  def needs_enhancement(self, score: QualityScore) -> bool:
    return not score.passing

  async def enhance(self, draft: RecipeDraft, score: QualityScore) -> tuple[RecipeDraft, BestEffortError | None]:
    """Run the single enhancement pass; on failure the original draft is kept."""
    try:
      improved = await self._enhancer.improve(draft, score)
      errors = improved.validation_errors()
      if errors:
        raise ValueError(f"enhanced recipe is invalid: {'; '.join(errors)}")
    except Exception as exc:  # noqa: BLE001
      logger.warning("Quality enhancement failed for recipe %s; keeping original: %s", draft.id, exc)
      return draft, BestEffortError("quality enhancement", exc)
    # Identity never changes, whatever the enhancer returned.
    adopted = improved.model_copy(update={"id": draft.id, "query": draft.query, "created_at": draft.created_at, "request_id": draft.request_id})
    logger.info("Adopted enhanced recipe %s (score %.1f)", draft.id, score.overall)
    return adopted, None
