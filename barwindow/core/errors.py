"""
Error Types - Exceptions raised by the bar window core.

Every error subclasses ValueError as well so callers that only guard
against bad input keep working.
"""

from __future__ import annotations

from typing import Optional


class BarWindowError(Exception):
    """Base class for all bar window errors."""


class ConstructionError(BarWindowError, ValueError):
    """Buffer parameters are invalid (zero capacity, bad factor, ...)."""


class FieldExtractionError(BarWindowError, ValueError):
    """A required bar field is missing or not numeric."""

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Bar field '{field}' is missing or not numeric")


class InvalidTimestampError(BarWindowError, ValueError):
    """The bar datetime could not be converted to epoch seconds."""


class StateDecodeError(BarWindowError, ValueError):
    """A persisted state record is malformed."""
