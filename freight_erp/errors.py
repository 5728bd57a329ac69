"""Exceptions raised by the ERP service layer."""

from __future__ import annotations

from typing import Iterable, List


class FreightERPError(RuntimeError):
    """Base exception for business rule violations."""


class ValidationError(FreightERPError):
    """Raised when submitted data fails validation.

    All collected messages are kept on ``errors`` so callers can display
    them together; ``str(exc)`` joins them.
    """

    def __init__(self, errors: Iterable[str] | str) -> None:
        if isinstance(errors, str):
            errors = [errors]
        self.errors: List[str] = list(errors)
        super().__init__("; ".join(self.errors))


class WorkflowError(FreightERPError):
    """Raised when a document is not in a state that allows the operation."""


class PermissionDeniedError(FreightERPError):
    """Raised when a role is not allowed to perform an operation."""


class ConfigurationError(FreightERPError):
    """Raised for invalid settings values."""


__all__ = [
    "FreightERPError",
    "ValidationError",
    "WorkflowError",
    "PermissionDeniedError",
    "ConfigurationError",
]
