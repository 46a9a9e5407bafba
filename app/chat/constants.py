"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Group rules (name length, capacity, join codes)
- Message operations (content limits, search, pagination)
- Expiry sweeping (warning window)
- Error codes carried by ServiceResult failures

Import example:
    from chat.constants import ERROR_CODES, GROUP_CONFIG, MESSAGE_CONFIG
"""

import string
from typing import Final

# Reserved sender id for system-generated messages
SYSTEM_SENDER_ID: Final[str] = "system"
SYSTEM_SENDER_NAME: Final[str] = "System"


# =============================================================================
# Error Codes
# =============================================================================


class ERROR_CODES:
    """Machine-readable error codes returned in ServiceResult.error_code."""

    VALIDATION_ERROR: Final[str] = "VALIDATION_ERROR"
    NOT_FOUND: Final[str] = "NOT_FOUND"
    FORBIDDEN: Final[str] = "FORBIDDEN"
    GROUP_FULL: Final[str] = "GROUP_FULL"
    GROUP_INACTIVE: Final[str] = "GROUP_INACTIVE"
    GROUP_EXPIRED: Final[str] = "GROUP_EXPIRED"
    STORE_UNAVAILABLE: Final[str] = "STORE_UNAVAILABLE"
    CASCADE_FAILURE: Final[str] = "CASCADE_FAILURE"


# =============================================================================
# Group Configuration
# =============================================================================


class GROUP_CONFIG:
    """Configuration for group lifecycle rules."""

    MIN_NAME_LENGTH: Final[int] = 3
    MAX_NAME_LENGTH: Final[int] = 50
    MAX_DESCRIPTION_LENGTH: Final[int] = 500

    MIN_MEMBERS: Final[int] = 2
    MAX_MEMBERS: Final[int] = 100
    DEFAULT_MAX_MEMBERS: Final[int] = 50

    # Fields that can never change after creation
    IMMUTABLE_FIELDS: Final[tuple] = (
        "id",
        "created_by",
        "created_at",
        "expiry_contract",
        "members",
        "admin_ids",
        "message_count",
        "join_code",
        "is_active",
        "last_active_at",
    )
    UPDATABLE_FIELDS: Final[tuple] = ("name", "description")


# =============================================================================
# Join Code Configuration
# =============================================================================


class JOIN_CODE_CONFIG:
    """Configuration for group join codes."""

    LENGTH: Final[int] = 6
    ALPHABET: Final[str] = string.ascii_uppercase + string.digits

    # Regeneration attempts when a code collides with another active group
    MAX_ATTEMPTS: Final[int] = 5


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    # Content limits
    MAX_CONTENT_LENGTH: Final[int] = 1000  # Characters
    MIN_CONTENT_LENGTH: Final[int] = 1

    # History pagination
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100

    # Search settings
    SEARCH_MAX_RESULTS: Final[int] = 100

    # Report settings
    MAX_REPORT_REASON_LENGTH: Final[int] = 500


# =============================================================================
# Expiry Configuration
# =============================================================================


class EXPIRY_CONFIG:
    """Configuration for the expiry sweeper."""

    # Post a warning once a group's deadline is this close (seconds)
    WARNING_WINDOW_SECONDS: Final[int] = 3600  # 1 hour
