"""
Permission classes for chat API.

This module provides DRF permission classes for the chat system:
- IsGroupAdmin: User has admin rights in the group (the creator always does)

Users are identified by the ``user_id`` claim of their JWT access token
(request.user is a stateless TokenUser), so checks run against membership
rows rather than a user table.

Design Decisions:
    - Services re-check membership and admin rights under the group row
      lock; IsGroupAdmin guards the endpoints whose service operation leaves
      authorization to the caller (delete, join code regeneration)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from chat.models import Group

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView


def request_user_id(request: Request) -> str:
    """The authenticated user's id as a string."""
    return str(request.user.id)


class IsGroupAdmin(permissions.BasePermission):
    """
    Allows access only to group admins.

    The creator is always treated as an admin.
    """

    message = "Only group admins can perform this action."

    def has_object_permission(self, request: Request, view: APIView, obj: Group) -> bool:
        if not request.user or not request.user.is_authenticated:
            return False
        return obj.is_admin(request_user_id(request))
