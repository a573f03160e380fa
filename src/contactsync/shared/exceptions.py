"""
Shared exceptions.

Every error the application raises on purpose derives from ``AppError`` so the
HTTP layer can map it to a response in one place.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass(eq=False)
class AppError(Exception):
    message: str = "Application error"
    details: Optional[dict[str, Any]] = None

    def __str__(self) -> str:
        return self.message


class NotFoundError(AppError):
    pass


class ValidationError(AppError):
    """Request input rejected before any work was done."""


class InvalidFormatError(AppError):
    """CSV content does not follow the agreed header or CSV grammar."""


class PrematureEndError(AppError):
    """The stream ended before the header line could be validated."""


class StreamError(AppError):
    """Reading the upload stream failed; the original error is ``__cause__``."""


class ExternalFetchError(AppError):
    """The external contact source could not return a page."""


class PersistenceError(AppError):
    """A storage write for a single batch failed."""
