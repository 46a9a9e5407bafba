"""
Domain exceptions raised by the chat stores.

Stores raise these from inside a transaction so the surrounding atomic block
rolls back; services catch them and turn them into ServiceResult failures
carrying the same error code.
"""

from core.exceptions import BaseApplicationError, ConflictError

from .constants import ERROR_CODES


class JoinCodeExhaustedError(BaseApplicationError):
    """Every generated join code collided with an active group."""

    default_error_code = ERROR_CODES.STORE_UNAVAILABLE


class GroupFullError(ConflictError):
    """The group already holds max_members members."""

    default_error_code = ERROR_CODES.GROUP_FULL


class GroupInactiveError(ConflictError):
    """The group was deleted and accepts no further writes."""

    default_error_code = ERROR_CODES.GROUP_INACTIVE


class CascadeFailureError(ConflictError):
    """Purging a group's messages failed, so the group was not deleted."""

    default_error_code = ERROR_CODES.CASCADE_FAILURE
