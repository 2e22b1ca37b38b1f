"""Minimal .env support for local runs."""

from __future__ import annotations

import os
from collections.abc import Iterable
from pathlib import Path

ENV_FILE_VARIABLE = "DELISIO_ENV_FILE"


def default_env_path() -> Path:
  """Return the .env path: DELISIO_ENV_FILE when set, else the repository root."""
  override = os.getenv(ENV_FILE_VARIABLE)
  if override:
    return Path(override)
  return Path(__file__).resolve().parents[2] / ".env"


def _unquote(value: str) -> str:
  if len(value) >= 2 and value[0] == value[-1] and value[0] in "\"'":
    return value[1:-1]
  # Unquoted values may carry a trailing " # comment".
  return value.split(" #", 1)[0].rstrip()


def parse_env_lines(lines: Iterable[str]) -> dict[str, str]:
  """Parse KEY=VALUE lines; blanks, comments and malformed lines are skipped."""
  values: dict[str, str] = {}
  for raw_line in lines:
    line = raw_line.strip()
    if line.startswith("export "):
      line = line[len("export ") :].lstrip()
    if not line or line.startswith("#") or "=" not in line:
      continue
    key, _, value = line.partition("=")
    key = key.strip()
    if key:
      values[key] = _unquote(value.strip())
  return values


def load_env_file(path: Path, *, override: bool = False) -> list[str]:
  """Apply a .env file to os.environ and return the keys that were set."""
  if not path.is_file():
    return []
  applied: list[str] = []
  for key, value in parse_env_lines(path.read_text(encoding="utf-8").splitlines()).items():
    if key in os.environ and not override:
      continue
    os.environ[key] = value
    applied.append(key)
  return applied
