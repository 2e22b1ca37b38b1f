from __future__ import annotations

import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Recipe(Base):
  __tablename__ = "recipes"

  id: Mapped[str] = mapped_column(String, primary_key=True)
  owner_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
  title: Mapped[str] = mapped_column(Text, nullable=False)
  title_normalized: Mapped[str] = mapped_column(Text, nullable=False, index=True)
  servings: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
  ingredients: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  steps: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  nutrition: Mapped[dict] = mapped_column(JSONB, nullable=False, default=dict)
  prep_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
  cook_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
  total_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
  category: Mapped[str | None] = mapped_column(String, nullable=True)
  tags: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  quality_score: Mapped[float | None] = mapped_column(Float, nullable=True)
  similarity_hash: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
  thumbnail_url: Mapped[str | None] = mapped_column(Text, nullable=True)
  query: Mapped[str | None] = mapped_column(Text, nullable=True)
  request_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class RecipeSnapshot(Base):
  """Progressive partial recipe keyed by generation request id."""

  __tablename__ = "recipe_snapshots"

  request_id: Mapped[str] = mapped_column(String, primary_key=True)
  payload: Mapped[dict] = mapped_column(JSONB, nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class GenerationJob(Base):
  """Status row for one generation request, shared by every worker process."""

  __tablename__ = "recipe_generation_jobs"

  request_id: Mapped[str] = mapped_column(String, primary_key=True)
  caller_id: Mapped[str | None] = mapped_column(String, nullable=True)
  request: Mapped[dict] = mapped_column(JSONB, nullable=False)
  phase: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
  progress_percent: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
  total_images: Mapped[int | None] = mapped_column(Integer, nullable=True)
  completed_images: Mapped[int | None] = mapped_column(Integer, nullable=True)
  failed_steps: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  recipe_id: Mapped[str | None] = mapped_column(String, nullable=True)
  owner_copy_id: Mapped[str | None] = mapped_column(String, nullable=True)
  duplicate_of: Mapped[str | None] = mapped_column(String, nullable=True)
  similarity_score: Mapped[float | None] = mapped_column(Float, nullable=True)
  warnings: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  error: Mapped[str | None] = mapped_column(Text, nullable=True)
  result_json: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  logs: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
  cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  created_at: Mapped[str] = mapped_column(String(32), nullable=False)
  updated_at: Mapped[str] = mapped_column(String(32), nullable=False)
  completed_at: Mapped[str | None] = mapped_column(String(32), nullable=True)
