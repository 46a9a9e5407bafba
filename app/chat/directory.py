"""
User directory lookup for display names.

The chat engine has no user table; it asks a directory for display names
when building system messages ("Alice joined the group") or when a sender
did not supply a name. The implementation is chosen with the
CHAT_USER_DIRECTORY setting (dotted path to a class).
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Protocol

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

DEFAULT_USER_DIRECTORY = "chat.directory.IdentityUserDirectory"


class UserDirectory(Protocol):
    """Resolves a user id to a display name."""

    def display_name(self, user_id: str) -> str: ...


class IdentityUserDirectory:
    """Fallback directory that uses the user id as the display name."""

    def display_name(self, user_id: str) -> str:
        return user_id


@lru_cache(maxsize=1)
def get_user_directory() -> UserDirectory:
    path = getattr(settings, "CHAT_USER_DIRECTORY", DEFAULT_USER_DIRECTORY)
    logger.debug(f"Loading user directory {path}")
    return import_string(path)()


def display_name(user_id: str) -> str:
    """Display name for a user, falling back to the id if the lookup is empty."""
    return get_user_directory().display_name(user_id) or user_id
