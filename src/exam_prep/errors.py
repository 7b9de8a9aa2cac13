"""
errors.py – Exception hierarchy and user-facing error messages
==============================================================
Services raise; pages catch ``ExamPrepError`` and show
``user_facing_message(exc)``.  Categories are deliberately coarse:

  connection   – store unavailable / I/O failure      (StorageError)
  permission   – acting on another user's documents   (PermissionDeniedError)
  quota        – store refused the write (disk full)  (QuotaExceededError)
  not found    – missing document or catalogue entry  (NotFoundError)
  validation   – form or request rejected             (FormValidationError)
"""

from __future__ import annotations

from typing import Any


CONNECTION_MESSAGE = "Connection error. Please check your internet connection and try again."
PERMISSION_MESSAGE = "Permission denied. Please refresh the page and try again."
QUOTA_MESSAGE      = "Service temporarily unavailable. Please try again in a few minutes."
GENERIC_MESSAGE    = "Failed to complete setup. Please try again."


class ExamPrepError(Exception):
    """Base class for every error raised by exam_prep services."""


class StorageError(ExamPrepError):
    """The document store could not be reached or the write failed."""

    def __init__(self, message: str = "") -> None:
        super().__init__(f"Firebase connection failed: {message}" if message else "Firebase connection failed")


class PermissionDeniedError(ExamPrepError, PermissionError):
    def __init__(self, message: str = "permission denied") -> None:
        super().__init__(message)


class QuotaExceededError(ExamPrepError):
    def __init__(self, message: str = "storage quota exceeded") -> None:
        super().__init__(message)


class NotFoundError(ExamPrepError, LookupError):
    pass


class FormValidationError(ExamPrepError, ValueError):
    """Raised when a form or request fails validation.

    ``violations`` holds the ``ValidationViolation`` objects (if any) so
    callers can highlight individual fields.
    """

    def __init__(self, message: str, violations: list[Any] | None = None) -> None:
        super().__init__(message)
        self.violations = list(violations or [])


def user_facing_message(exc: BaseException) -> str:
    """Map any exception to the string shown in the UI."""
    text = str(exc)
    if isinstance(exc, StorageError) or "Firebase" in text:
        return CONNECTION_MESSAGE
    if isinstance(exc, PermissionDeniedError) or "permission" in text:
        return PERMISSION_MESSAGE
    if isinstance(exc, QuotaExceededError) or "quota" in text:
        return QUOTA_MESSAGE
    return text or GENERIC_MESSAGE
