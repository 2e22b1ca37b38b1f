import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI

from app.core.database import build_database
from app.core.logging import _initialize_logging
from app.services.pipeline import build_pipeline_service
from app.services.storage_client import build_storage_client


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Build the pipeline service for this process and tear it down on shutdown."""
  from app.config import get_database_settings, get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")
  _initialize_logging(settings)
  logger.info("Startup: environment=%s database=%s", settings.environment, _redact_dsn(settings.pg_dsn))

  database = build_database(get_database_settings())
  if database is not None:
    try:
      await database.create_tables()
    except Exception:  # noqa: BLE001
      # Snapshots fall back to the local map; canonical writes will fail loudly per request.
      logger.error("Failed to prepare database tables at startup.", exc_info=True)

  storage_client = build_storage_client(settings)
  try:
    await storage_client.ensure_bucket()
    logger.info("Image bucket ensured: %s", storage_client.bucket_name)
  except Exception as exc:  # noqa: BLE001
    logger.warning("Failed to ensure image bucket at startup: %s", exc)

  service = build_pipeline_service(settings, database, blob_store=storage_client)
  service.start()
  app.state.pipeline_service = service
  try:
    yield
  finally:
    logger.info("Shutdown: draining worker pools.")
    app.state.pipeline_service = None
    await service.shutdown()
    if database is not None:
      await database.dispose()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
