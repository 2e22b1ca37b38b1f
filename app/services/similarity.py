"""Recipe text normalisation, similarity scoring and the duplicate pre-filter hash."""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Iterable, Sequence

from app.ai.pipeline.contracts import RecipeDraft, SimilarityResult

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 0.3
INGREDIENTS_WEIGHT = 0.5
STEPS_WEIGHT = 0.2
DUPLICATE_THRESHOLD = 0.8

_UNITS = (
  "oz|ounce|g|gram|kg|kilogram|lb|pound|cup|tsp|teaspoon|tbsp|tablespoon|ml|l|liter|litre|"
  "pinch|dash|clove|slice|piece|can|package|stick|bunch|handful|sprig|quart|pint"
)
_AMOUNT = r"(?:\d+(?:[.,]\d+)?(?:\s*/\s*\d+)?(?:\s*[¼-¾⅐-⅞])?|[¼-¾⅐-⅞])"
_QUANTITY_RE = re.compile(rf"^[\s*\-]*{_AMOUNT}(?:\s*(?:-|to)\s*{_AMOUNT})?(?:\s*(?:{_UNITS})(?:e?s)?\b\.?)?(?:\s+of\b)?\s*")
_PARENTHETICAL_RE = re.compile(r"\([^)]*\)|\[[^\]]*\]")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

_DESCRIPTOR_PHRASES = ("at room temperature", "to taste", "for garnish", "finely", "roughly")
_DESCRIPTORS = frozenset(
  {
    "fresh",
    "dried",
    "chopped",
    "minced",
    "diced",
    "sliced",
    "grated",
    "crushed",
    "ground",
    "optional",
    "peeled",
    "seeded",
    "cored",
    "rinsed",
    "drained",
    "cooked",
    "uncooked",
    "raw",
    "frozen",
    "thawed",
    "softened",
    "melted",
    "divided",
    "large",
    "medium",
    "small",
  }
)

STOP_WORDS = frozenset(
  """
  about add after again all also and any are bake been before being below between boil both bowl but can cannot combine cook
  could cover cut did does doing down drain during each few for from further get gently gradually had has have having heat
  her here hers herself high him himself his how into its itself just large let like low make medium mix more most myself
  nor not now off once one only other ought our ours ourselves out over own pan place pour remove repeat same season serve set
  she should simmer since small some stir such than that the their theirs them themselves then there these they this those
  through together too toss turn under until use very was well were what when where which while whisk who whom why will with
  wok would you your yours yourself yourselves
  """.split()
)


def normalize_text(text: str) -> str:
  """Lower-case, strip punctuation and collapse whitespace."""
  lowered = _PUNCTUATION_RE.sub(" ", text.lower())
  return _WHITESPACE_RE.sub(" ", lowered).strip()


def normalize_ingredient(text: str) -> str:
  """Reduce an ingredient line to its core name."""
  cleaned = _PARENTHETICAL_RE.sub(" ", text.lower())
  cleaned = cleaned.split(",", 1)[0]
  cleaned = _QUANTITY_RE.sub("", cleaned.strip())
  for phrase in _DESCRIPTOR_PHRASES:
    cleaned = cleaned.replace(phrase, " ")
  words = [word for word in normalize_text(cleaned).split(" ") if word and word not in _DESCRIPTORS and not word.isdigit()]
  return " ".join(words)


def singularize(word: str) -> str:
  """Return a naive singular form for plural English nouns."""
  if len(word) > 4 and word.endswith("ies"):
    return f"{word[:-3]}y"
  if len(word) > 4 and word.endswith(("oes", "ches", "shes", "sses", "xes")):
    return word[:-2]
  if len(word) > 3 and word.endswith("s") and not word.endswith(("ss", "us", "is")):
    return word[:-1]
  return word


def ingredient_tokens(ingredients: Iterable[str]) -> set[str]:
  """Word tokens of every normalised ingredient, singularised, shorter tokens dropped."""
  tokens: set[str] = set()
  for ingredient in ingredients:
    for word in normalize_ingredient(ingredient).split(" "):
      token = singularize(word)
      if len(token) > 2:
        tokens.add(token)
  return tokens


def title_words(title: str) -> set[str]:
  return {word for word in normalize_text(title).split(" ") if word}


def step_keywords(steps: Iterable[str]) -> set[str]:
  """Keywords longer than three characters, stop-words removed."""
  keywords: set[str] = set()
  for text in steps:
    for word in normalize_text(text).split(" "):
      if len(word) > 3 and word not in STOP_WORDS:
        keywords.add(word)
  return keywords


def jaccard(left: set[str], right: set[str]) -> float:
  """Jaccard index; two empty sets are identical."""
  if not left and not right:
    return 1.0
  union = left | right
  return len(left & right) / len(union)


def similarity_hash(title: str, ingredients: Sequence[str], servings: int | None) -> str:
  """SHA-256 hex digest of normalised title, sorted ingredient tokens and servings."""
  tokens = ",".join(sorted(ingredient_tokens(ingredients)))
  material = f"{normalize_text(title)}|{tokens}|{servings if servings is not None else ''}"
  return hashlib.sha256(material.encode("utf-8")).hexdigest()


def draft_hash(draft: RecipeDraft) -> str:
  return similarity_hash(draft.title, draft.ingredients, draft.servings)


def compare(left: RecipeDraft, right: RecipeDraft, *, threshold: float = DUPLICATE_THRESHOLD) -> SimilarityResult:
  """Score two recipes; the result is symmetric in its arguments."""
  title_score = jaccard(title_words(left.title), title_words(right.title))
  ingredient_score = jaccard(ingredient_tokens(left.ingredients), ingredient_tokens(right.ingredients))
  step_score = jaccard(step_keywords(step.text for step in left.steps), step_keywords(step.text for step in right.steps))
  combined = TITLE_WEIGHT * title_score + INGREDIENTS_WEIGHT * ingredient_score + STEPS_WEIGHT * step_score
  combined = round(combined, 6)
  return SimilarityResult(is_duplicate=combined >= threshold, score=combined, existing_recipe_id=right.id, title=title_score, ingredients=ingredient_score, steps=step_score)


def title_hint(title: str) -> str:
  """Loose title match key for candidate retrieval."""
  return normalize_text(title)


def best_match(draft: RecipeDraft, candidates: Iterable[RecipeDraft], *, threshold: float = DUPLICATE_THRESHOLD) -> SimilarityResult:
  """Score candidates against the draft and report the best one, skipping the draft itself."""
  best: SimilarityResult | None = None
  for candidate in candidates:
    if candidate.id == draft.id:
      continue
    result = compare(draft, candidate, threshold=threshold)
    logger.debug("Similarity draft=%s candidate=%s score=%.3f", draft.id, candidate.id, result.score)
    if best is None or result.score > best.score:
      best = result
  if best is None:
    return SimilarityResult(is_duplicate=False, score=0.0)
  return best
