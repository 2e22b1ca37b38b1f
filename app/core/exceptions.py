import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.ai.errors import PipelineError

logger = logging.getLogger("app.core.exceptions")

_GENERIC_FAILURE = "Internal Server Error"


def _request_id(request: Request) -> str | None:
  return getattr(request.state, "request_id", None)


def _json_safe(value: Any) -> Any:
  """Reduce arbitrary validation context to JSON primitives."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  """Shape every error body as {"detail": ..., "requestId": ...}."""
  payload: dict[str, Any] = {"detail": detail}
  if request_id:
    payload["requestId"] = request_id
  return payload


def _error_response(request: Request, status_code: int, detail: Any) -> JSONResponse:
  return JSONResponse(status_code=status_code, content=_error_payload(detail, request_id=_request_id(request)))


def _sanitize_validation_errors(errors: list[dict[str, Any]]) -> list[dict[str, Any]]:
  """Drop echoed request input (top level and ctx) from pydantic errors."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    entry = {key: value for key, value in error.items() if key != "input"}
    context = entry.get("ctx")
    if isinstance(context, dict):
      entry["ctx"] = {key: value for key, value in context.items() if key != "input"}
    sanitized.append(_json_safe(entry))
  return sanitized


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
  logger.error("Unhandled error request_id=%s path=%s error_type=%s", _request_id(request), request.url.path, type(exc).__name__, exc_info=True)
  return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, _GENERIC_FAILURE)


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
  errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Invalid request request_id=%s %s %s errors=%s", _request_id(request), request.method, request.url.path, errors)
  return _error_response(request, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
  """Pass 4xx details through; mask 5xx details except the 503 readiness message."""
  if exc.status_code < 500:
    return _error_response(request, exc.status_code, exc.detail)
  logger.error("HTTP %s request_id=%s path=%s detail=%s", exc.status_code, _request_id(request), request.url.path, exc.detail)
  detail = exc.detail if exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE else _GENERIC_FAILURE
  return _error_response(request, exc.status_code, detail)


async def pipeline_exception_handler(request: Request, exc: PipelineError) -> JSONResponse:
  # Pipeline messages can quote model output, so they stay in the logs.
  phase = getattr(exc, "phase", None)
  logger.error("Pipeline error escaped request_id=%s path=%s error_type=%s phase=%s", _request_id(request), request.url.path, type(exc).__name__, phase, exc_info=True)
  return _error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, _GENERIC_FAILURE)
