"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Delisio recipe engine."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  pg_dsn: str | None
  pg_connect_timeout: int
  image_bucket: str
  gcs_storage_host: str | None
  gcp_project_id: str | None
  openai_api_key: str | None
  content_model: str
  image_model: str
  orchestrator_concurrency: int
  image_concurrency: int
  image_phase_attempts: int
  image_retry_base_seconds: float
  image_download_timeout_seconds: float
  quality_threshold: float
  duplicate_threshold: float
  duplicate_candidate_limit: int
  snapshot_ttl_seconds: int
  cancellation_ttl_seconds: int
  terminal_job_retention: int


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ("http://localhost:3000",)

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("DELISIO_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("DELISIO_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("DELISIO_ENV", "development").lower()

  # Toggle verbose error output and diagnostics in non-production environments.
  debug = _parse_bool(os.getenv("DELISIO_DEBUG"))

  log_max_bytes = _positive_int("DELISIO_LOG_MAX_BYTES", "5242880")  # 5MB default
  log_backup_count = int(os.getenv("DELISIO_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("DELISIO_LOG_BACKUP_COUNT must be zero or a positive integer.")

  # Pool sizes are independent so image bursts never starve content generation.
  orchestrator_concurrency = _positive_int("DELISIO_RECIPE_WORKER_CONCURRENCY", "2")
  image_concurrency = _positive_int("DELISIO_IMAGE_WORKER_CONCURRENCY", "3")

  image_phase_attempts = _positive_int("DELISIO_IMAGE_PHASE_ATTEMPTS", "3")
  image_retry_base_seconds = _positive_float("DELISIO_IMAGE_RETRY_BASE_SECONDS", "1")
  image_download_timeout_seconds = _positive_float("DELISIO_IMAGE_DOWNLOAD_TIMEOUT_SECONDS", "30")

  quality_threshold = float(os.getenv("DELISIO_QUALITY_THRESHOLD", "7.0"))
  if not 0 <= quality_threshold <= 10:
    raise ValueError("DELISIO_QUALITY_THRESHOLD must be between 0 and 10.")

  duplicate_threshold = float(os.getenv("DELISIO_DUPLICATE_THRESHOLD", "0.8"))
  if not 0 < duplicate_threshold <= 1:
    raise ValueError("DELISIO_DUPLICATE_THRESHOLD must be in (0, 1].")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("DELISIO_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    pg_dsn=os.getenv("DELISIO_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("DELISIO_PG_CONNECT_TIMEOUT", "5"),
    image_bucket=os.getenv("DELISIO_IMAGE_BUCKET", "delisio-step-images"),
    gcs_storage_host=_optional_str(os.getenv("GCS_STORAGE_HOST")),
    gcp_project_id=_optional_str(os.getenv("GCP_PROJECT_ID")),
    openai_api_key=_optional_str(os.getenv("OPENAI_API_KEY")),
    content_model=os.getenv("DELISIO_CONTENT_MODEL", "gpt-4o-mini"),
    image_model=os.getenv("DELISIO_IMAGE_MODEL", "dall-e-3"),
    orchestrator_concurrency=orchestrator_concurrency,
    image_concurrency=image_concurrency,
    image_phase_attempts=image_phase_attempts,
    image_retry_base_seconds=image_retry_base_seconds,
    image_download_timeout_seconds=image_download_timeout_seconds,
    quality_threshold=quality_threshold,
    duplicate_threshold=duplicate_threshold,
    duplicate_candidate_limit=_positive_int("DELISIO_DUPLICATE_CANDIDATE_LIMIT", "10"),
    snapshot_ttl_seconds=_positive_int("DELISIO_SNAPSHOT_TTL_SECONDS", "900"),
    cancellation_ttl_seconds=_positive_int("DELISIO_CANCELLATION_TTL_SECONDS", "900"),
    terminal_job_retention=_positive_int("DELISIO_TERMINAL_JOB_RETENTION", "1000"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  debug = _parse_bool(os.getenv("DELISIO_DEBUG"))
  pg_connect_timeout = int(os.getenv("DELISIO_PG_CONNECT_TIMEOUT", "5"))
  if pg_connect_timeout <= 0:
    raise ValueError("DELISIO_PG_CONNECT_TIMEOUT must be a positive integer.")

  pg_dsn = os.getenv("DELISIO_PG_DSN") or os.getenv("DATABASE_URL")

  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
