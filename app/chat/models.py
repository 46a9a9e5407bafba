"""
Chat system models.

This module defines the data models for ephemeral group chat:
- Groups that carry an expiry contract and die when it is met
- Messages with read receipts and optional self-destruct timers

Models:
    Group: Aggregate root for a chat room, its capacity, counters and contract
    GroupMembership: One row per member of a group, flagged when admin
    Message: Individual message within a group
    MessageReport: A user's report against a message

Design Decisions:
    - Group and Message are separate aggregates related only by group id;
      every cross-aggregate operation goes through the stores
    - Membership is a row per (group, user_id) pair so joining and leaving
      are single inserts and deletes guarded by a unique constraint
    - Admin status lives on the membership row, so an admin is always a member;
      the creator is admin regardless of the flag
    - Deleting a group is a soft delete (is_active=False) after its messages
      have been purged
    - User ids are opaque strings issued by the identity provider; there is
      no local user table
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.db import models
from django.db.models import Q
from django.utils import timezone

from core.exceptions import ConflictError
from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from .constants import GROUP_CONFIG, JOIN_CODE_CONFIG, SYSTEM_SENDER_ID
from .contracts import from_storage
from .managers import GroupQuerySet, MessageQuerySet

if TYPE_CHECKING:
    from .contracts import ExpiryContract


class MessageType(models.TextChoices):
    """
    Type of message content.

    TEXT: User-authored text message
    IMAGE: User-authored message referencing an image
    SYSTEM: Auto-generated event message (sender_id is "system")
    """

    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    SYSTEM = "system", "System"


class Group(UUIDPrimaryKeyMixin, BaseModel):
    """
    A chat group whose lifetime is bounded by an expiry contract.

    Lifecycle:
        1. Created with the creator as sole member and admin
        2. Members join by code or are added by admins; messages bump
           message_count and last_active_at
        3. Once the contract is met (or an admin deletes it) its messages are
           purged and is_active flips to False

    Fields:
        name: Display name (3-50 characters)
        description: Optional free text
        created_by: User id of the creator (immutable)
        expiry_contract: Stored contract mapping, see chat.contracts
        last_active_at: Last message or activity, never moves backwards
        message_count: Accepted user messages, never decreases while active
        join_code: 6-char public code, unique among active groups
        is_active: False once soft-deleted
        max_members: Capacity (2-100)
        deactivated_at: When the group was soft-deleted
        expiry_warning_sent_at: When the "expires soon" notice was posted

    Relationships:
        memberships: GroupMembership rows for current members
        messages: Message rows in this group
    """

    # Overrides BaseModel so created_at and last_active_at share one clock read
    created_at = models.DateTimeField(
        default=timezone.now,
        db_index=True,
        help_text="Timestamp when this group was created",
    )

    name = models.CharField(
        max_length=GROUP_CONFIG.MAX_NAME_LENGTH,
        help_text="Display name of the group",
    )

    description = models.TextField(
        blank=True,
        default="",
        help_text="Optional description of the group",
    )

    created_by = models.CharField(
        max_length=128,
        db_index=True,
        help_text="User id of the creator (always a member and admin)",
    )

    expiry_contract = models.JSONField(
        help_text='Expiry contract, e.g. {"type": "timed", "durationMillis": 3600000}',
    )

    last_active_at = models.DateTimeField(
        db_index=True,
        help_text="Timestamp of the most recent activity in the group",
    )

    message_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of accepted user messages",
    )

    join_code = models.CharField(
        max_length=JOIN_CODE_CONFIG.LENGTH,
        db_index=True,
        help_text="Public code used to join the group",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="False once the group has been deleted or expired",
    )

    max_members = models.PositiveSmallIntegerField(
        default=GROUP_CONFIG.DEFAULT_MAX_MEMBERS,
        help_text="Maximum number of members",
    )

    deactivated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the group was deactivated",
    )

    expiry_warning_sent_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the expiry warning message was posted",
    )

    objects = GroupQuerySet.as_manager()

    class Meta:
        db_table = "chat_group"
        ordering = ["-last_active_at", "-created_at"]
        indexes = [
            # Sweeper scan over active groups
            models.Index(
                fields=["is_active", "last_active_at"],
                name="chat_group_active_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(
                    max_members__gte=GROUP_CONFIG.MIN_MEMBERS,
                    max_members__lte=GROUP_CONFIG.MAX_MEMBERS,
                ),
                name="chat_group_max_members_range",
            ),
            # A code may be reused once the group holding it is gone
            models.UniqueConstraint(
                fields=["join_code"],
                condition=Q(is_active=True),
                name="unique_active_join_code",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        status = "active" if self.is_active else "inactive"
        return f"Group: {self.name} [{status}]"

    @property
    def contract(self) -> ExpiryContract:
        """Decoded expiry contract."""
        return from_storage(self.expiry_contract)

    @property
    def members(self) -> list[str]:
        """User ids of current members, oldest membership first."""
        return [m.user_id for m in self.memberships.all()]

    @property
    def admin_ids(self) -> set[str]:
        """User ids with admin rights; always includes the creator."""
        admins = {m.user_id for m in self.memberships.all() if m.is_admin}
        admins.add(self.created_by)
        return admins

    @property
    def member_count(self) -> int:
        return len(self.members)

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members

    def is_admin(self, user_id: str) -> bool:
        return user_id == self.created_by or user_id in self.admin_ids

    def has_expired(self, now: datetime | None = None) -> bool:
        """
        Check the contract against the group's current counters.

        Args:
            now: Point in time to evaluate at (defaults to timezone.now())
        """
        return self.contract.has_expired(self, now or timezone.now())

    def expires_at(self) -> datetime | None:
        """Deadline for timed and inactivity contracts, None otherwise."""
        return self.contract.expires_at(self.created_at, self.last_active_at)

    def remaining_time(self, now: datetime | None = None) -> timedelta | None:
        """
        Time left before the deadline, never negative.

        Returns None for contracts without a deadline.
        """
        deadline = self.expires_at()
        if deadline is None:
            return None
        return max(timedelta(0), deadline - (now or timezone.now()))


class GroupMembership(BaseModel):
    """
    A user's membership in a group.

    Rows are inserted on join and deleted on leave. The unique constraint
    makes a concurrent double join collapse into one row.

    Fields:
        group: Group the user belongs to
        user_id: Opaque user id
        is_admin: Whether the member has admin rights
    """

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="memberships",
        help_text="Group this membership belongs to",
    )

    user_id = models.CharField(
        max_length=128,
        db_index=True,
        help_text="User id of the member",
    )

    is_admin = models.BooleanField(
        default=False,
        help_text="Whether this member is a group admin",
    )

    class Meta:
        db_table = "chat_group_membership"
        ordering = ["created_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["group", "user_id"],
                name="unique_group_membership",
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        role = " (admin)" if self.is_admin else ""
        return f"Member: {self.user_id} in {self.group_id}{role}"


def check_membership_invariants(group: Group) -> None:
    """
    Validate the membership rules of a group against the database.

    Every admin is a member by construction, so this checks that the creator
    is a member flagged admin and that the group is within capacity.

    Raises:
        ConflictError: If any rule is broken
    """
    rows = list(GroupMembership.objects.filter(group_id=group.pk).values_list("user_id", "is_admin"))
    flags = dict(rows)

    if group.created_by not in flags:
        raise ConflictError(f"Creator {group.created_by} is not a member of group {group.pk}")
    if not flags[group.created_by]:
        raise ConflictError(f"Creator {group.created_by} lost admin rights in group {group.pk}")
    if len(rows) > group.max_members:
        raise ConflictError(
            f"Group {group.pk} has {len(rows)} members, capacity is {group.max_members}"
        )


class Message(UUIDPrimaryKeyMixin, BaseModel):
    """
    A message within a group.

    Message Types:
        TEXT / IMAGE: Authored by a member
        SYSTEM: Posted by the engine (joins, leaves, warnings); always read

    Self-destruct:
        When self_destruct_duration is set, the first read stamps
        first_read_at and destruct_at = first_read_at + duration. The sweeper
        deletes read messages once destruct_at has passed.

    Fields:
        group: Group this message belongs to
        sender_id: User id of the sender ("system" for system messages)
        sender_name: Display name at send time
        content: Message text
        read_by: User ids that have read the message
        is_read: True once anyone has read it
        first_read_at: When the first reader read it
        self_destruct_duration: Milliseconds after first read before deletion
        destruct_at: When the message becomes due for deletion
        message_type: text, image or system
        reply_to: Message in the same group this one replies to
        is_edited / edited_at: Edit tracking
    """

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Group this message belongs to",
    )

    sender_id = models.CharField(
        max_length=128,
        db_index=True,
        help_text='User id of the sender ("system" for system messages)',
    )

    sender_name = models.CharField(
        max_length=150,
        blank=True,
        default="",
        help_text="Display name of the sender when the message was sent",
    )

    content = models.TextField(
        help_text="Message text",
    )

    read_by = models.JSONField(
        default=list,
        blank=True,
        help_text="User ids that have read this message",
    )

    is_read = models.BooleanField(
        default=False,
        help_text="True once at least one user has read the message",
    )

    first_read_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the message was first read",
    )

    self_destruct_duration = models.PositiveBigIntegerField(
        null=True,
        blank=True,
        help_text="Milliseconds after first read before the message is deleted",
    )

    destruct_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the message becomes due for self-destruction",
    )

    message_type = models.CharField(
        max_length=10,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        db_index=True,
        help_text="Type of message (text, image or system)",
    )

    reply_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
        help_text="Message this one replies to (same group)",
    )

    is_edited = models.BooleanField(
        default=False,
        help_text="Whether the content was edited after sending",
    )

    edited_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the message was last edited",
    )

    objects = MessageQuerySet.as_manager()

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            # Messages in a group (history pagination)
            models.Index(
                fields=["group", "created_at", "id"],
                name="chat_msg_group_cursor_idx",
            ),
            # Self-destruct sweep
            models.Index(
                fields=["is_read", "destruct_at"],
                name="chat_msg_destruct_idx",
                condition=Q(destruct_at__isnull=False),
            ),
        ]

    def __str__(self) -> str:
        """Return human-readable representation."""
        content_preview = self.content[:50] + "..." if len(self.content) > 50 else self.content
        return f"{self.sender_name or self.sender_id}: {content_preview}"

    @property
    def is_system_message(self) -> bool:
        """Check if this is a system-generated message."""
        return self.message_type == MessageType.SYSTEM or self.sender_id == SYSTEM_SENDER_ID

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def is_destruction_due(self, now: datetime | None = None) -> bool:
        """True once a read self-destructing message has passed its deadline."""
        if not self.is_read or self.destruct_at is None:
            return False
        return (now or timezone.now()) >= self.destruct_at


class MessageReport(BaseModel):
    """
    A report filed by a user against a message.

    message_id and group_id are plain UUIDs so the report outlives the
    message when it is deleted or its group is purged.
    """

    message_id = models.UUIDField(
        db_index=True,
        help_text="Id of the reported message",
    )

    group_id = models.UUIDField(
        db_index=True,
        help_text="Id of the group the message was in",
    )

    reported_by = models.CharField(
        max_length=128,
        help_text="User id of the reporter",
    )

    reason = models.TextField(
        help_text="Why the message was reported",
    )

    class Meta:
        db_table = "chat_message_report"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        """Return human-readable representation."""
        return f"Report on {self.message_id} by {self.reported_by}"
