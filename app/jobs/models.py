"""Domain models for asynchronous recipe generation jobs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

JobPhase = Literal[
  "queued",
  "generating_content",
  "quality_check",
  "enhancing",
  "categorizing",
  "duplicate_check",
  "fanning_out_images",
  "aggregating",
  "persisting",
  "completed",
  "failed",
  "cancelled",
]

TERMINAL_PHASES: frozenset[str] = frozenset({"completed", "failed", "cancelled"})


@dataclass
class JobRecord:
  """Represents one recipe generation request as seen by pollers."""

  request_id: str
  caller_id: str | None
  request: dict[str, Any]
  phase: JobPhase
  created_at: str
  updated_at: str
  progress_percent: float = 0.0
  total_images: int | None = None
  completed_images: int | None = None
  failed_steps: list[int] = field(default_factory=list)
  recipe_id: str | None = None
  owner_copy_id: str | None = None
  duplicate_of: str | None = None
  similarity_score: float | None = None
  warnings: list[str] = field(default_factory=list)
  error: str | None = None
  result_json: dict[str, Any] | None = None
  logs: list[str] = field(default_factory=list)
  completed_at: str | None = None
  cancel_requested: bool = False

  @property
  def is_terminal(self) -> bool:
    return self.phase in TERMINAL_PHASES
