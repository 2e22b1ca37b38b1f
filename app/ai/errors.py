"""Error taxonomy for the recipe generation pipeline."""

from __future__ import annotations


class PipelineError(Exception):
  """Base class for pipeline failures."""


class FatalPipelineError(PipelineError):
  """Content generation or canonical persistence failed; the run is terminal."""

  def __init__(self, message: str, *, phase: str | None = None) -> None:
    super().__init__(message)
    self.phase = phase


class DegradedStepError(PipelineError):
  """An image sub-job exhausted its retries; the step keeps a null image."""

  def __init__(self, step_index: int, phase: str, cause: BaseException) -> None:
    super().__init__(f"Step {step_index} failed during {phase}: {cause}")
    self.step_index = step_index
    self.phase = phase
    self.cause = cause


class BestEffortError(PipelineError):
  """A non-critical operation failed; the run continues with a warning."""

  def __init__(self, operation: str, cause: BaseException) -> None:
    super().__init__(f"{operation} failed: {cause}")
    self.operation = operation
    self.cause = cause


class ContentValidationError(FatalPipelineError):
  """Generated content could not be parsed into a usable recipe."""

  def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
    super().__init__(message, phase="generating_content")
    self.errors = list(errors or [])
