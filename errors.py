from __future__ import annotations

from typing import Optional


class LocatorError(Exception):
    """Base class for every error raised by the locator."""


class ValidationError(LocatorError):
    """User input rejected before any store call was made."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field


class StoreError(LocatorError):
    """The backing store refused or failed a request."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(StoreError):
    """A lookup by identifier matched zero rows."""
