import logging
import logging.handlers
import sys
import time
import traceback
from pathlib import Path
from types import TracebackType

from app.config import Settings

LOG_LINE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%H:%M:%S"
TRACEBACK_TAIL = 5
# Loggers that install their own handlers; route them through ours instead.
_SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi")
# SDK clients log every request at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "google.auth", "urllib3")

_LOG_FILE_PATH: Path | None = None


class TruncatedFormatter(logging.Formatter):
  """Console formatter that keeps the exception line and the innermost frames only."""

  # ruff: noqa: N802
  def formatException(self, ei: tuple[type[BaseException] | None, BaseException | None, TracebackType | None]) -> str:
    lines = traceback.format_exception(*ei)
    if len(lines) <= TRACEBACK_TAIL + 1:
      return "".join(lines)
    skipped = len(lines) - TRACEBACK_TAIL - 1
    return "".join([lines[0], f"    ... {skipped} frame line(s) omitted ...\n", *lines[-TRACEBACK_TAIL:]])


def _rotated_name(default_name: str) -> str:
  """Name rotated files delisio.log-1 instead of delisio.log.1."""
  stem, _, suffix = default_name.rpartition(".")
  if stem and suffix.isdigit():
    return f"{stem}-{suffix}"
  return default_name


def _log_file_path() -> Path:
  log_dir = Path(__file__).resolve().parents[2] / "logs"
  log_path = log_dir / f"delisio_{time.strftime('%Y%m%d_%H%M%S')}.log"
  try:
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path.touch(exist_ok=True)
  except OSError as exc:
    raise RuntimeError(f"Cannot prepare log file {log_path}: {exc}") from exc
  return log_path


def _console_handler() -> logging.Handler:
  handler = logging.StreamHandler(sys.stdout)
  handler.setFormatter(TruncatedFormatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return handler


def _file_handler(log_path: Path, settings: Settings) -> logging.Handler:
  # Files keep full tracebacks; only the console is trimmed.
  handler = logging.handlers.RotatingFileHandler(log_path, encoding="utf-8", maxBytes=settings.log_max_bytes, backupCount=settings.log_backup_count)
  handler.namer = _rotated_name
  handler.setFormatter(logging.Formatter(LOG_LINE_FORMAT, datefmt=LOG_DATE_FORMAT))
  return handler


def setup_logging(settings: Settings) -> Path:
  """Install console and rotating file handlers on the root and server loggers."""
  log_path = _log_file_path()
  handlers = [_console_handler(), _file_handler(log_path, settings)]
  logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO, handlers=handlers, force=True)

  for name in _SERVER_LOGGERS:
    server_logger = logging.getLogger(name)
    server_logger.handlers = list(handlers)
    server_logger.propagate = False
  for name in _QUIET_LOGGERS:
    logging.getLogger(name).setLevel(logging.INFO)
  return log_path


def _initialize_logging(settings: Settings) -> None:
  """Set up logging once per process and announce the pool sizes."""
  global _LOG_FILE_PATH
  if _LOG_FILE_PATH is not None:
    return
  _LOG_FILE_PATH = setup_logging(settings)
  logger = logging.getLogger("app.core.logging")
  logger.info("Logging to %s (debug=%s)", _LOG_FILE_PATH, settings.debug)
  logger.info("Worker pools: recipe=%d image=%d", settings.orchestrator_concurrency, settings.image_concurrency)
