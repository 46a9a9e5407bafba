"""
Custom QuerySets for chat models.

Manager vs QuerySet:
    - QuerySet: Defines chainable filters (active, for_member, ...)
    - Manager: Attached with ``QuerySet.as_manager()`` on the model

Usage:
    Group.objects.active().for_member(user_id)
    Message.objects.in_group(group_id).newest_first()[:100]
    Message.objects.due_for_destruction(now)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models

if TYPE_CHECKING:
    from datetime import datetime


class GroupQuerySet(models.QuerySet):
    """Chainable filters over groups."""

    def active(self) -> GroupQuerySet:
        """Groups that have not been deleted."""
        return self.filter(is_active=True)

    def for_member(self, user_id: str) -> GroupQuerySet:
        """Groups the user currently belongs to."""
        return self.filter(memberships__user_id=user_id)

    def by_join_code(self, join_code: str) -> GroupQuerySet:
        """Active group holding the code (at most one)."""
        return self.active().filter(join_code=join_code)

    def with_deadlines(self) -> GroupQuerySet:
        """Active groups whose contract has a wall-clock deadline."""
        return self.active().filter(expiry_contract__type__in=("timed", "inactivity"))


class MessageQuerySet(models.QuerySet):
    """Chainable filters over messages."""

    def in_group(self, group_id) -> MessageQuerySet:
        return self.filter(group_id=group_id)

    def newest_first(self) -> MessageQuerySet:
        return self.order_by("-created_at", "-id")

    def user_messages(self) -> MessageQuerySet:
        """Exclude system messages."""
        return self.exclude(message_type="system")

    def due_for_destruction(self, now: datetime) -> MessageQuerySet:
        """
        Read messages whose self-destruct deadline has passed.

        destruct_at is only stamped on first read, so unread messages never
        match even if they carry a duration.
        """
        return self.filter(
            is_read=True,
            self_destruct_duration__isnull=False,
            destruct_at__isnull=False,
            destruct_at__lte=now,
        )
