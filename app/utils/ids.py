"""Identifier utilities."""

from __future__ import annotations

import uuid


def generate_recipe_id() -> str:
  """Return a new recipe identifier."""
  return str(uuid.uuid4())


def generate_request_id() -> str:
  """Return a new generation request identifier."""
  return str(uuid.uuid4())
