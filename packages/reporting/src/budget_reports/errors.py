"""Exceptions raised by the report pipeline.

Each error carries a ``status_code`` hint so an HTTP layer can map it
directly onto a response.
"""

from typing import Any


class ReportingError(Exception):
    """Base exception for report pipeline errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details


class NotFoundError(ReportingError):
    """A referenced department or report does not exist."""

    status_code = 404


class ConflictError(ReportingError):
    """A report already exists for the requested key."""

    status_code = 409


class ValidationError(ReportingError):
    """Malformed period bounds, negative amounts or unknown category."""

    status_code = 422


class UpstreamError(ReportingError):
    """The analysis provider was unreachable or failed."""

    status_code = 502


class StoreError(ReportingError):
    """A persistence read or write failed."""

    status_code = 500
