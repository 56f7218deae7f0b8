"""
Error taxonomy for view composition.

  ValidationError        — bad parameters or malformed identifier (400, never retried)
  ViewerRequiredError    — owner-scoped view requested anonymously (401)
  NotFoundError          — anchor entity missing (404)
  ShapeError             — join type mismatch / missing field, i.e. schema drift (500)
  StoreUnavailableError  — transient store failure, retried once by the adapter (503)

The pipeline stamps ``stage`` on any error that aborts it.
"""
from typing import Optional


class CompositionError(Exception):
    http_status = 500

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def at(self, stage: str) -> "CompositionError":
        # keep the innermost stage if one was already recorded
        if self.stage is None:
            self.stage = stage
        return self

    def __str__(self) -> str:
        if self.stage:
            return f"[{self.stage}] {self.message}"
        return self.message


class ValidationError(CompositionError):
    http_status = 400


class ViewerRequiredError(ValidationError):
    http_status = 401


class NotFoundError(CompositionError):
    http_status = 404


class ShapeError(CompositionError):
    http_status = 500


class StoreUnavailableError(CompositionError):
    http_status = 503
