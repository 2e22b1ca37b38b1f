from __future__ import annotations

from collections.abc import Iterator

import pytest

from app.config import get_settings


@pytest.fixture(autouse=True)
def fresh_settings() -> Iterator[None]:
  get_settings.cache_clear()
  yield
  get_settings.cache_clear()


def test_defaults_match_pipeline_constants(monkeypatch: pytest.MonkeyPatch) -> None:
  for name in ("DELISIO_QUALITY_THRESHOLD", "DELISIO_DUPLICATE_THRESHOLD", "DELISIO_IMAGE_PHASE_ATTEMPTS", "DELISIO_ALLOWED_ORIGINS"):
    monkeypatch.delenv(name, raising=False)

  settings = get_settings()

  assert settings.quality_threshold == 7.0
  assert settings.duplicate_threshold == 0.8
  assert settings.image_phase_attempts == 3
  assert settings.allowed_origins == ("http://localhost:3000",)


def test_origins_are_split_and_wildcards_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
  monkeypatch.setenv("DELISIO_ALLOWED_ORIGINS", "https://a.example, https://b.example")
  assert get_settings().allowed_origins == ("https://a.example", "https://b.example")

  get_settings.cache_clear()
  monkeypatch.setenv("DELISIO_ALLOWED_ORIGINS", "*")
  with pytest.raises(ValueError, match="wildcard"):
    get_settings()


@pytest.mark.parametrize(
  ("name", "value"),
  [
    ("DELISIO_DUPLICATE_THRESHOLD", "1.5"),
    ("DELISIO_DUPLICATE_THRESHOLD", "0"),
    ("DELISIO_QUALITY_THRESHOLD", "11"),
    ("DELISIO_IMAGE_WORKER_CONCURRENCY", "0"),
    ("DELISIO_IMAGE_RETRY_BASE_SECONDS", "-1"),
  ],
)
def test_invalid_values_fail_fast(monkeypatch: pytest.MonkeyPatch, name: str, value: str) -> None:
  monkeypatch.setenv(name, value)
  with pytest.raises(ValueError):
    get_settings()
