import logging
import re
import time
import uuid

from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger("app.core.middleware")

REQUEST_ID_HEADER = "x-request-id"
_SAFE_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _incoming_request_id(headers: Headers) -> str:
  """Reuse a well-formed gateway request id; mint one otherwise."""
  supplied = headers.get(REQUEST_ID_HEADER, "").strip()
  if _SAFE_REQUEST_ID.match(supplied):
    return supplied
  return str(uuid.uuid4())


class RequestLoggingMiddleware:
  """Tag each HTTP request with an id and log method, path, status and latency."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    headers = Headers(scope=scope)
    request_id = _incoming_request_id(headers)
    scope.setdefault("state", {})["request_id"] = request_id
    path = scope.get("path", "")
    method = scope.get("method", "UNKNOWN")
    started = time.perf_counter()
    status_code = 0

    async def send_with_request_id(message: Message) -> None:
      nonlocal status_code
      if message["type"] == "http.response.start":
        status_code = message["status"]
        MutableHeaders(scope=message).setdefault(REQUEST_ID_HEADER, request_id)
      await send(message)

    try:
      await self.app(scope, receive, send_with_request_id)
    finally:
      elapsed_ms = (time.perf_counter() - started) * 1000
      # Caller ids are opaque; only log whether one was supplied.
      logger.info("request_id=%s %s %s status=%s caller=%s took=%.1fms", request_id, method, path, status_code, "yes" if headers.get("x-user-id") else "anonymous", elapsed_ms)
