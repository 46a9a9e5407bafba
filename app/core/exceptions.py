"""
Domain exceptions carrying machine-readable error codes.

Services raise these for rule violations and convert them to failed
ServiceResults (see core.services) before they reach a view. Each class
has a default code; subclasses in the apps narrow it further, e.g.
chat.exceptions.GroupFullError uses GROUP_FULL.

Hierarchy:
    BaseApplicationError
    ├── ValidationError   bad input or malformed stored data
    ├── NotFoundError     a single record that should exist does not
    └── ConflictError     the record's state forbids the operation

Usage:
    from core.exceptions import ValidationError

    raise ValidationError("Unknown expiry contract type: 'weekly'")
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Root of the domain exception hierarchy.

    Attributes:
        message: Human-readable description, safe to show to clients
        error_code: Machine-readable code
        details: Extra context for logs
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    """
    Input failed validation.

    Also raised when stored data cannot be decoded, so a corrupt record
    fails loudly instead of being read with defaults.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """A record looked up by id does not exist. List queries return empty instead."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    The operation clashes with the record's current state.

    Capacity limits, writes to deactivated records and broken membership
    rules all land here.
    """

    default_error_code: str = "CONFLICT"
