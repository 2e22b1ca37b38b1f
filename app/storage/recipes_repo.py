"""Storage interfaces for canonical recipe records."""

from __future__ import annotations

import asyncio
from typing import Protocol

from app.ai.pipeline.contracts import RecipeDraft
from app.services.similarity import normalize_text

RecipeRecord = RecipeDraft


class RecipeRepository(Protocol):
  """Repository contract for recipe persistence."""

  async def find_candidates(self, title_hint: str, similarity_hash: str | None, limit: int) -> list[RecipeRecord]:
    """Return at most `limit` recipes whose title loosely matches or whose hash is equal."""

  async def upsert(self, record: RecipeRecord, owner_id: str | None) -> RecipeRecord:
    """Insert or replace a recipe under record.id."""

  async def get(self, recipe_id: str) -> RecipeRecord | None:
    """Fetch a recipe by identifier."""


class InMemoryRecipeRepository:
  """Process-local repository used when no database is configured."""

  def __init__(self) -> None:
    self._records: dict[str, RecipeRecord] = {}
    self._owners: dict[str, str | None] = {}
    self._lock = asyncio.Lock()

  async def find_candidates(self, title_hint: str, similarity_hash: str | None, limit: int) -> list[RecipeRecord]:
    hint = normalize_text(title_hint)
    matches: list[RecipeRecord] = []
    for record in self._records.values():
      record_title = normalize_text(record.title)
      loose = bool(hint) and (hint in record_title or record_title in hint or bool(set(hint.split()) & set(record_title.split())))
      if loose or (similarity_hash is not None and record.similarity_hash == similarity_hash):
        matches.append(record.model_copy(deep=True))
      if len(matches) >= limit:
        break
    return matches

  async def upsert(self, record: RecipeRecord, owner_id: str | None) -> RecipeRecord:
    async with self._lock:
      stored = record.model_copy(deep=True)
      self._records[stored.id] = stored
      self._owners[stored.id] = owner_id
      return stored.model_copy(deep=True)

  async def get(self, recipe_id: str) -> RecipeRecord | None:
    record = self._records.get(recipe_id)
    return record.model_copy(deep=True) if record is not None else None

  def owner_of(self, recipe_id: str) -> str | None:
    return self._owners.get(recipe_id)

  def all(self) -> list[RecipeRecord]:
    return [record.model_copy(deep=True) for record in self._records.values()]
