"""
Shared foundation for the project's apps.

Nothing here knows about chat groups. Apps build on:

- core.models.BaseModel and core.model_mixins.UUIDPrimaryKeyMixin
- core.services.BaseService and ServiceResult
- core.exceptions with its coded error hierarchy
- core.views.health_check

Models are left out of the re-exports below so importing ``core`` never
touches the app registry.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    "BaseApplicationError",
    "BaseService",
    "ConflictError",
    "NotFoundError",
    "ServiceResult",
    "ValidationError",
]
