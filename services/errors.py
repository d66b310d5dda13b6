"""
Exception taxonomy for the ingestion pipeline.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer should answer with. Client errors (``ValidationError`` and its
subclasses) must not be retried as-is; ``StorageError`` and
``UnexpectedError`` are safe to retry because inserts are all-or-nothing.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class IngestionError(Exception):
    """Base exception for all ingestion failures."""

    code = "IngestionError"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class ValidationError(IngestionError):
    """Raised when an inbound payload is rejected before anything is stored."""

    code = "ValidationError"
    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        if self.field is not None:
            payload["field"] = self.field
        return payload


class BadRequestBody(ValidationError):
    code = "BadRequestBody"


class MissingField(ValidationError):
    code = "MissingField"

    def __init__(self, field: str) -> None:
        super().__init__(f"Required field missing: '{field}'", field=field)


class TypeMismatch(ValidationError):
    code = "TypeMismatch"


class InvalidField(ValidationError):
    code = "InvalidField"


class OutOfRange(ValidationError):
    code = "OutOfRange"


class StorageError(IngestionError):
    """Raised when the readings store is unavailable or rejects a write."""

    code = "StorageError"


class UnexpectedError(IngestionError):
    code = "UnexpectedError"
