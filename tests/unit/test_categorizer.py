from __future__ import annotations

from app.ai.categorizer import TAXONOMY_LABELS, KeywordCategorizer
from app.ai.pipeline.contracts import StepDraft
from tests.conftest import make_draft


def test_pizza_is_classified_as_baking() -> None:
  result = KeywordCategorizer().classify(make_draft())

  assert result.category == "baking"
  assert "quick-easy" not in result.tags


def test_quick_salad_gets_the_quick_tag() -> None:
  draft = make_draft(
    title="Greek Salad",
    ingredients=["1 cucumber", "2 tomatoes", "100 g feta", "1 head lettuce", "2 tbsp vinaigrette"],
    steps=[StepDraft(text="Chop the vegetables."), StepDraft(text="Dress with vinaigrette.")],
    prep_time=10,
    cook_time=0,
    total_time=10,
  )

  result = KeywordCategorizer().classify(draft)

  assert result.category == "salad"
  assert "quick-easy" in result.tags


def test_unmatched_recipe_falls_back_to_other() -> None:
  draft = make_draft(title="Mystery", ingredients=["1 thing"], steps=[StepDraft(text="Combine.")], prep_time=None, cook_time=None, total_time=None)

  result = KeywordCategorizer().classify(draft)

  assert result.category == "other"
  assert result.tags == ()


def test_labels_always_come_from_the_taxonomy() -> None:
  result = KeywordCategorizer().classify(make_draft(title="Chicken Curry Soup", total_time=25))

  assert result.category in TAXONOMY_LABELS
  assert set(result.tags) <= set(TAXONOMY_LABELS)
  assert len(result.tags) <= 3
