"""Deterministic taxonomy classification by keyword and ingredient matching."""

from __future__ import annotations

from app.ai.pipeline.contracts import Categorization, RecipeDraft
from app.services.similarity import ingredient_tokens, singularize, step_keywords, title_words

MAX_TAGS = 3
FALLBACK_CATEGORY = "other"
QUICK_MINUTES = 30

# Ordered: earlier entries win ties.
TAXONOMY: dict[str, frozenset[str]] = {
  "breakfast": frozenset({"breakfast", "pancake", "waffle", "omelet", "omelette", "granola", "oatmeal", "porridge", "frittata", "brunch", "muesli"}),
  "dessert": frozenset({"dessert", "cake", "cookie", "brownie", "pie", "tart", "pudding", "custard", "chocolate", "icing", "frosting", "cheesecake", "sorbet", "ice"}),
  "soup": frozenset({"soup", "broth", "stew", "chowder", "bisque", "gazpacho", "ramen", "pho"}),
  "salad": frozenset({"salad", "vinaigrette", "slaw", "lettuce", "arugula", "green"}),
  "pasta": frozenset({"pasta", "spaghetti", "penne", "linguine", "fettuccine", "macaroni", "lasagna", "lasagne", "noodle", "ravioli", "gnocchi", "orzo", "tagliatelle"}),
  "seafood": frozenset({"fish", "salmon", "tuna", "shrimp", "prawn", "cod", "crab", "lobster", "scallop", "mussel", "clam", "squid", "anchovy", "halibut", "tilapia"}),
  "meat": frozenset({"beef", "pork", "chicken", "lamb", "turkey", "bacon", "sausage", "ham", "steak", "veal", "duck", "mince", "chorizo", "prosciutto"}),
  "baking": frozenset({"bake", "baked", "oven", "bread", "dough", "yeast", "muffin", "scone", "loaf", "pastry", "biscuit", "pizza"}),
  "appetizer": frozenset({"appetizer", "dip", "bruschetta", "canape", "skewer", "tapas", "hummus", "guacamole", "salsa", "crostini"}),
  "side-dish": frozenset({"side", "roasted", "mashed", "pilaf", "fry", "coleslaw", "gratin"}),
  "slow-cooker": frozenset({"slow", "crockpot", "braise", "braised"}),
  "beverage": frozenset({"smoothie", "drink", "cocktail", "lemonade", "tea", "coffee", "juice", "latte", "shake", "punch"}),
  "vegan": frozenset({"vegan", "tofu", "tempeh", "seitan"}),
  "vegetarian": frozenset({"vegetarian", "veggie", "lentil", "chickpea", "halloumi", "paneer"}),
  "gluten-free": frozenset({"gluten", "quinoa", "buckwheat"}),
  "healthy": frozenset({"healthy", "light", "lean", "kale", "spinach", "avocado", "steamed"}),
  "international": frozenset({"curry", "taco", "burrito", "sushi", "risotto", "paella", "tikka", "masala", "teriyaki", "kimchi", "falafel", "enchilada", "pad", "stir", "wok"}),
  "dinner": frozenset({"dinner", "roast", "casserole", "entree", "supper"}),
  "lunch": frozenset({"lunch", "sandwich", "wrap", "burger", "panini", "quesadilla", "bowl"}),
}

TAXONOMY_LABELS: tuple[str, ...] = (*TAXONOMY.keys(), "quick-easy", FALLBACK_CATEGORY)


def _vocabulary(draft: RecipeDraft) -> tuple[set[str], set[str]]:
  """Return (title and ingredient tokens, step tokens), singularised."""
  primary = {singularize(word) for word in title_words(draft.title)} | ingredient_tokens(draft.ingredients)
  secondary = {singularize(word) for word in step_keywords(step.text for step in draft.steps)}
  return primary, secondary


class KeywordCategorizer:
  """Classify a draft into one category and up to three tags from a fixed taxonomy."""

  def classify(self, draft: RecipeDraft) -> Categorization:
    primary, secondary = _vocabulary(draft)
    scores: list[tuple[float, int, str]] = []
    for order, (label, keywords) in enumerate(TAXONOMY.items()):
      # Title and ingredient hits outweigh hits found only in the steps.
      score = 2 * len(primary & keywords) + len(secondary & keywords)
      if score > 0:
        scores.append((-score, order, label))
    scores.sort()
    ranked = [label for _, _, label in scores]

    total = draft.total_time if draft.total_time is not None else _sum_times(draft)
    if total is not None and 0 < total <= QUICK_MINUTES:
      ranked.append("quick-easy")

    if not ranked:
      return Categorization(category=FALLBACK_CATEGORY, tags=())
    return Categorization(category=ranked[0], tags=tuple(ranked[1 : 1 + MAX_TAGS]))


def _sum_times(draft: RecipeDraft) -> int | None:
  if draft.prep_time is None and draft.cook_time is None:
    return None
  return (draft.prep_time or 0) + (draft.cook_time or 0)
