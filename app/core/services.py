"""
Service layer building blocks.

Views and tasks never touch models directly; they call class methods on a
BaseService subclass and get a ServiceResult back.

- Expected failures (bad input, permission, capacity, an unreachable
  database) come back as ServiceResult.failure with an error code.
- Bugs and broken invariants raise.

Usage:
    from core.services import BaseService, ServiceResult

    class GroupService(BaseService):
        @classmethod
        def rename(cls, group_id, name: str) -> ServiceResult[Group]:
            if len(name) < 3:
                return ServiceResult.failure(
                    "Group name must be at least 3 characters",
                    error_code="VALIDATION_ERROR",
                )
            try:
                with cls.atomic():
                    group = Group.objects.select_for_update().get(id=group_id)
                    group.name = name
                    group.save(update_fields=["name", "updated_at"])
            except DatabaseError as exc:
                return cls.handle_exception(exc, f"rename {group_id}")

            cls.get_logger().info(f"Renamed group {group.id}")
            return ServiceResult.success(group)
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import DatabaseError, transaction

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from collections.abc import Generator

T = TypeVar("T")

# Error code for any database failure; callers may retry
STORE_UNAVAILABLE = "STORE_UNAVAILABLE"


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the operation succeeded
        data: Result payload when successful
        error: Human-readable message when failed
        error_code: Machine-readable code when failed

    Usage:
        result = GroupService.join_group_by_code(user_id, code)
        if result.success:
            group = result.data
        elif result.error_code == "GROUP_FULL":
            ...
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Failed result from an exception.

        Application errors keep their message and code. Anything else uses
        the exception text and upper-cased class name.
        """
        if isinstance(exc, BaseApplicationError):
            return cls.failure(exc.message, error_code or exc.error_code)
        return cls.failure(str(exc), error_code or exc.__class__.__name__.upper())

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for stateless services.

    Subclasses expose class methods only and share logging, transactions
    and database error translation through the helpers below.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the concrete service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the block in a database transaction.

        Nested use opens a savepoint, so an inner failure only rolls back
        the inner block.
        """
        with transaction.atomic():
            yield

    @classmethod
    def handle_exception(
        cls,
        exc: Exception,
        context: str = "",
        log_level: int = logging.ERROR,
    ) -> ServiceResult:
        """
        Log an exception and convert it to a failed result.

        Database errors become STORE_UNAVAILABLE with a generic message;
        the driver's text only goes to the log.

        Args:
            exc: The caught exception
            context: Operation and ids, prefixed to the log line
            log_level: Level for the log line
        """
        message = f"{context}: {exc}" if context else str(exc)
        cls.get_logger().log(log_level, message, exc_info=True)

        if isinstance(exc, DatabaseError):
            return ServiceResult.failure(
                "The service is temporarily unavailable. Please try again.",
                error_code=STORE_UNAVAILABLE,
            )
        return ServiceResult.from_exception(exc)
