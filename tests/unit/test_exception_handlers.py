"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from app.core.exceptions import _error_payload, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body", "query"), "msg": "Value error, query is empty.", "input": {"query": ""}, "ctx": {"error": ValueError("query is empty."), "input": {"query": ""}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["loc"] == ["body", "query"]
  assert sanitized[0]["ctx"]["error"] == "ValueError: query is empty."
  assert "input" not in sanitized[0]["ctx"]


def test_error_payload_only_carries_request_id_when_known() -> None:
  assert _error_payload("nope") == {"detail": "nope"}
  assert _error_payload("nope", request_id="abc") == {"detail": "nope", "requestId": "abc"}
