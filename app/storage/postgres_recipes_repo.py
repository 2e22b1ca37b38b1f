"""Postgres-backed repository for recipes using SQLAlchemy."""

from __future__ import annotations

from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.ai.pipeline.contracts import NutritionInfo, RecipeDraft, StepDraft
from app.schema.sql import Recipe
from app.services.similarity import normalize_text
from app.storage.recipes_repo import RecipeRecord, RecipeRepository


class PostgresRecipeRepository(RecipeRepository):
  """Persist canonical and caller-owned recipes to Postgres."""

  def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
    self._session_factory = session_factory

  async def find_candidates(self, title_hint: str, similarity_hash: str | None, limit: int) -> list[RecipeRecord]:
    hint = normalize_text(title_hint)
    clauses: list[Any] = []
    if hint:
      clauses.append(Recipe.title_normalized.ilike(f"%{hint}%"))
      # Also match stored titles contained in the hint ("margherita pizza" inside "classic margherita pizza").
      for word in {word for word in hint.split(" ") if len(word) > 3}:
        clauses.append(Recipe.title_normalized.ilike(f"%{word}%"))
    if similarity_hash:
      clauses.append(Recipe.similarity_hash == similarity_hash)
    if not clauses:
      return []

    async with self._session_factory() as session:
      stmt = select(Recipe).where(or_(*clauses)).order_by(Recipe.created_at.desc()).limit(limit)
      result = await session.execute(stmt)
      return [self._model_to_record(row) for row in result.scalars().all()]

  async def upsert(self, record: RecipeRecord, owner_id: str | None) -> RecipeRecord:
    async with self._session_factory() as session:
      row = await session.get(Recipe, record.id)
      if row is None:
        row = Recipe(id=record.id, owner_id=owner_id, created_at=record.created_at)
        session.add(row)
      elif owner_id is not None:
        row.owner_id = owner_id
      self._apply(row, record)
      await session.commit()
      await session.refresh(row)
      return self._model_to_record(row)

  async def get(self, recipe_id: str) -> RecipeRecord | None:
    async with self._session_factory() as session:
      row = await session.get(Recipe, recipe_id)
      if row is None:
        return None
      return self._model_to_record(row)

  @staticmethod
  def _apply(row: Recipe, record: RecipeRecord) -> None:
    row.title = record.title
    row.title_normalized = normalize_text(record.title)
    row.servings = record.servings
    row.ingredients = list(record.ingredients)
    row.steps = [step.model_dump() for step in record.steps]
    row.nutrition = record.nutrition.model_dump()
    row.prep_time = record.prep_time
    row.cook_time = record.cook_time
    row.total_time = record.total_time
    row.category = record.category
    row.tags = list(record.tags)
    row.quality_score = record.quality_score
    row.similarity_hash = record.similarity_hash
    row.thumbnail_url = record.thumbnail_url
    row.query = record.query
    row.request_id = record.request_id

  @staticmethod
  def _model_to_record(row: Recipe) -> RecipeRecord:
    return RecipeDraft(
      id=row.id,
      title=row.title,
      servings=row.servings,
      ingredients=list(row.ingredients or []),
      steps=[StepDraft.model_validate(step) for step in row.steps or []],
      nutrition=NutritionInfo.model_validate(row.nutrition or {}),
      prep_time=row.prep_time,
      cook_time=row.cook_time,
      total_time=row.total_time,
      category=row.category,
      tags=list(row.tags or []),
      quality_score=row.quality_score,
      similarity_hash=row.similarity_hash,
      thumbnail_url=row.thumbnail_url,
      query=row.query,
      created_at=row.created_at,
      request_id=row.request_id,
    )
