"""
Error taxonomy for the rental domain.

Every error carries the HTTP status code the API layer answers with, so
services never import anything from FastAPI.
"""

from typing import Optional


class RentalError(Exception):
    """Base class for all rental domain errors."""

    status_code: int = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(RentalError):
    """Missing or malformed input."""

    status_code = 400


class InvalidRangeError(ValidationError):
    """A date or rent range whose end lies before its start."""


class NotFoundError(RentalError):
    """A referenced entity is absent or a query matched nothing."""

    status_code = 404


class ConflictError(RentalError):
    """The book is already held and single-holder enforcement is on."""

    status_code = 409


class StoreError(RentalError):
    """The underlying document store failed."""

    status_code = 500
