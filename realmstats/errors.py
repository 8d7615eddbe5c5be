"""
realmstats.errors — Service error taxonomy
===========================================

Services raise these; the API layer maps them onto HTTP responses through a
single exception handler (see :mod:`realmstats.api.main`).

    ServiceError
    ├── ValidationError   400  bad or missing input
    ├── NotFoundError     404  referenced entity absent
    └── DatabaseError     500  persistence failure (wraps the cause)
        └── BatchPersistError  a row batch failed mid-ingestion
"""

from __future__ import annotations

from typing import Any


class ServiceError(Exception):
    """Base class for errors that carry an HTTP-friendly code and status."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ServiceError):
    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(ServiceError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource: str, identifier: str | int | None = None) -> None:
        suffix = f" with identifier '{identifier}'" if identifier is not None else ""
        super().__init__(f"{resource}{suffix} not found")
        self.resource = resource
        self.identifier = identifier


class DatabaseError(ServiceError):
    """Persistence failure.  ``cause`` is the underlying exception."""

    code = "DATABASE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message, details)
        self.cause = cause


class BatchPersistError(DatabaseError):
    """A row batch failed; earlier batches remain committed."""

    def __init__(
        self,
        message: str,
        *,
        batch_number: int,
        rows_committed: int,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(
            message,
            cause,
            details={"batch_number": batch_number, "rows_committed": rows_committed},
        )
        self.batch_number = batch_number
        self.rows_committed = rows_committed
