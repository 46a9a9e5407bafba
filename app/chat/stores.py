"""
Persistence operations over the Group and Message aggregates.

The stores are the only code that writes chat rows. Each mutating
operation is a short transaction on one group row (or one message row):

    - Membership changes run against a group row locked with
      select_for_update(), insert or delete a single GroupMembership row and
      re-check the membership invariants before commit
    - Counters use database-side F() expressions so concurrent senders never
      lose an increment
    - Join codes are generated and retried on IntegrityError from the
      "unique among active groups" constraint

Store methods raise (NotFoundError, GroupFullError, GroupInactiveError, ...)
so the enclosing atomic block rolls back; the services translate those into
ServiceResult failures.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import DateTimeField, F, Q
from django.db.models.functions import Greatest

from core.exceptions import NotFoundError

from .constants import JOIN_CODE_CONFIG, MESSAGE_CONFIG
from .contracts import Inactivity
from .exceptions import GroupFullError, GroupInactiveError, JoinCodeExhaustedError
from .models import Group, GroupMembership, Message, MessageReport, check_membership_invariants

if TYPE_CHECKING:
    from datetime import datetime
    from typing import Any
    from uuid import UUID

    from .contracts import ExpiryContract

logger = logging.getLogger(__name__)


def generate_join_code() -> str:
    """Random 6-character code from A-Z and 0-9."""
    return "".join(
        secrets.choice(JOIN_CODE_CONFIG.ALPHABET) for _ in range(JOIN_CODE_CONFIG.LENGTH)
    )


def parse_id(value) -> uuid.UUID | None:
    """The value as a UUID, or None when it cannot name any row."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class GroupStore:
    """Transactional operations over Group rows and their memberships."""

    @staticmethod
    def create(
        *,
        name: str,
        description: str,
        created_by: str,
        contract: ExpiryContract,
        max_members: int,
        now: datetime,
    ) -> Group:
        """
        Insert a group with its creator as sole member and admin.

        Raises:
            JoinCodeExhaustedError: If every generated code collided
        """
        for attempt in range(1, JOIN_CODE_CONFIG.MAX_ATTEMPTS + 1):
            join_code = generate_join_code()
            try:
                with transaction.atomic():
                    group = Group.objects.create(
                        name=name,
                        description=description,
                        created_by=created_by,
                        expiry_contract=contract.to_storage(),
                        created_at=now,
                        last_active_at=now,
                        message_count=0,
                        join_code=join_code,
                        is_active=True,
                        max_members=max_members,
                    )
                    GroupMembership.objects.create(group=group, user_id=created_by, is_admin=True)
                    check_membership_invariants(group)
                    return group
            except IntegrityError:
                logger.warning(f"Join code collision on create (attempt {attempt}): {join_code}")

        raise JoinCodeExhaustedError("Could not allocate a unique join code")

    @staticmethod
    def get(group_id: UUID | str) -> Group | None:
        return Group.objects.prefetch_related("memberships").filter(id=parse_id(group_id)).first()

    @staticmethod
    def get_by_join_code(join_code: str) -> Group | None:
        return Group.objects.by_join_code(join_code).first()

    @staticmethod
    def lock(group_id: UUID | str) -> Group:
        """
        Fetch the group row with a row lock held until the transaction ends.

        Must be called inside transaction.atomic().

        Raises:
            NotFoundError: If no group has this id
        """
        group = Group.objects.select_for_update().filter(id=parse_id(group_id)).first()
        if group is None:
            raise NotFoundError("Group not found")
        return group

    @staticmethod
    def list_for_member(user_id: str) -> list[Group]:
        return list(
            Group.objects.active()
            .for_member(user_id)
            .prefetch_related("memberships")
            .order_by("-last_active_at", "-created_at")
        )

    @staticmethod
    def list_active() -> list[Group]:
        return list(Group.objects.active())

    @staticmethod
    def add_member(group: Group, user_id: str, is_admin: bool = False) -> bool:
        """
        Add a member to a locked group.

        Returns:
            True if the user was added, False if already a member

        Raises:
            GroupInactiveError: If the group was deleted
            GroupFullError: If the group is at capacity
        """
        if not group.is_active:
            raise GroupInactiveError("Group is no longer active")

        if GroupMembership.objects.filter(group=group, user_id=user_id).exists():
            return False

        if GroupMembership.objects.filter(group=group).count() >= group.max_members:
            raise GroupFullError("Group is full")

        GroupMembership.objects.create(group=group, user_id=user_id, is_admin=is_admin)
        check_membership_invariants(group)
        return True

    @staticmethod
    def remove_member(group: Group, user_id: str) -> bool:
        """
        Remove a member (and their admin flag) from a locked group.

        Returns:
            True if a membership was deleted, False if the user was not a member
        """
        if not group.is_active:
            raise GroupInactiveError("Group is no longer active")

        deleted, _ = GroupMembership.objects.filter(group=group, user_id=user_id).delete()
        check_membership_invariants(group)
        return deleted > 0

    @staticmethod
    def set_admin(group: Group, user_id: str, is_admin: bool) -> bool:
        """
        Flip the admin flag of a member of a locked group.

        Returns:
            True if the flag changed, False if it already had that value

        Raises:
            NotFoundError: If the user is not a member
        """
        if not group.is_active:
            raise GroupInactiveError("Group is no longer active")

        membership = GroupMembership.objects.filter(group=group, user_id=user_id).first()
        if membership is None:
            raise NotFoundError("User is not a member of this group")
        if membership.is_admin == is_admin:
            return False

        membership.is_admin = is_admin
        membership.save(update_fields=["is_admin", "updated_at"])
        check_membership_invariants(group)
        return True

    @staticmethod
    def record_message(group_id: UUID | str, now: datetime) -> Group:
        """
        Count one accepted message and refresh last_active_at.

        Runs as its own single-row transaction. last_active_at never moves
        backwards even if a late writer's clock is behind.

        Raises:
            NotFoundError: If the group does not exist
            GroupInactiveError: If the group was deleted meanwhile
        """
        with transaction.atomic():
            group = GroupStore.lock(group_id)
            if not group.is_active:
                raise GroupInactiveError("Group is no longer active")
            changes = {
                "message_count": F("message_count") + 1,
                "last_active_at": Greatest(F("last_active_at"), now, output_field=DateTimeField()),
            }
            # Activity pushes an inactivity deadline out, so a new warning is due later
            if isinstance(group.contract, Inactivity):
                changes["expiry_warning_sent_at"] = None
            Group.objects.filter(id=group.id).update(**changes)
            group.refresh_from_db()
        return group

    @staticmethod
    def touch(group_id: UUID | str, now: datetime) -> int:
        """Bump last_active_at of an active group."""
        return (
            Group.objects.active()
            .filter(id=group_id)
            .update(last_active_at=Greatest(F("last_active_at"), now, output_field=DateTimeField()))
        )

    @staticmethod
    def update_fields(group: Group, **fields: Any) -> Group:
        """Write the given mutable fields of a locked group."""
        if not group.is_active:
            raise GroupInactiveError("Group is no longer active")
        for name, value in fields.items():
            setattr(group, name, value)
        group.save(update_fields=[*fields.keys(), "updated_at"])
        return group

    @staticmethod
    def set_join_code(group: Group) -> str:
        """
        Replace the join code of a locked group with a fresh unique one.

        Raises:
            JoinCodeExhaustedError: If every generated code collided
        """
        if not group.is_active:
            raise GroupInactiveError("Group is no longer active")

        for attempt in range(1, JOIN_CODE_CONFIG.MAX_ATTEMPTS + 1):
            join_code = generate_join_code()
            try:
                with transaction.atomic():
                    Group.objects.filter(id=group.id).update(join_code=join_code)
            except IntegrityError:
                logger.warning(f"Join code collision on regenerate (attempt {attempt}): {join_code}")
                continue
            group.join_code = join_code
            return join_code

        raise JoinCodeExhaustedError("Could not allocate a unique join code")

    @staticmethod
    def mark_warning_sent(group_id: UUID | str, now: datetime) -> bool:
        """Stamp expiry_warning_sent_at once; False if already stamped."""
        updated = Group.objects.active().filter(
            id=group_id, expiry_warning_sent_at__isnull=True
        ).update(expiry_warning_sent_at=now)
        return updated > 0

    @staticmethod
    def deactivate(group: Group, now: datetime) -> None:
        """Soft-delete a locked group."""
        group.is_active = False
        group.deactivated_at = now
        group.save(update_fields=["is_active", "deactivated_at", "updated_at"])


class MessageStore:
    """Operations over Message rows."""

    @staticmethod
    def create(**fields: Any) -> Message:
        return Message.objects.create(**fields)

    @staticmethod
    def get(message_id: UUID | str) -> Message | None:
        return Message.objects.filter(id=parse_id(message_id)).first()

    @staticmethod
    def lock(message_id: UUID | str) -> Message:
        """
        Fetch the message row with a row lock.

        Raises:
            NotFoundError: If no message has this id
        """
        message = Message.objects.select_for_update().filter(id=parse_id(message_id)).first()
        if message is None:
            raise NotFoundError("Message not found")
        return message

    @staticmethod
    def page(group_id: UUID | str, limit: int, before: Message | None = None) -> list[Message]:
        """
        A chronological page of at most ``limit`` messages.

        With ``before`` set, the page ends just before that message.
        """
        queryset = Message.objects.in_group(group_id)
        if before is not None:
            queryset = queryset.filter(
                Q(created_at__lt=before.created_at)
                | Q(created_at=before.created_at, id__lt=before.id)
            )
        newest = list(queryset.newest_first()[:limit])
        newest.reverse()
        return newest

    @staticmethod
    def search(group_id: UUID | str, query: str) -> list[Message]:
        """Case-insensitive match on content or sender name within the newest messages."""
        needle = query.casefold()
        recent = Message.objects.in_group(group_id).newest_first()[
            : MESSAGE_CONFIG.SEARCH_MAX_RESULTS
        ]
        return [
            message
            for message in recent
            if needle in message.content.casefold() or needle in message.sender_name.casefold()
        ]

    @staticmethod
    def unread_count(group_id: UUID | str, user_id: str) -> int:
        read_sets = (
            Message.objects.in_group(group_id)
            .user_messages()
            .exclude(sender_id=user_id)
            .values_list("read_by", flat=True)
        )
        return sum(1 for read_by in read_sets if user_id not in (read_by or []))

    @staticmethod
    def latest_for_groups(group_ids: list) -> dict[str, Message]:
        latest = {}
        for group_id in group_ids:
            message = Message.objects.in_group(group_id).newest_first().first()
            if message is not None:
                latest[str(group_id)] = message
        return latest

    @staticmethod
    def mark_read(message: Message, user_id: str, now: datetime) -> bool:
        """
        Union a reader into read_by of a locked message.

        The first reader sets is_read, first_read_at and, for self-destructing
        messages, destruct_at.

        Returns:
            True if the reader was new, False if already recorded
        """
        read_by = list(message.read_by or [])
        if user_id in read_by:
            return False

        read_by.append(user_id)
        message.read_by = read_by
        update_fields = ["read_by", "updated_at"]

        if message.first_read_at is None:
            message.is_read = True
            message.first_read_at = now
            update_fields += ["is_read", "first_read_at"]
            if message.self_destruct_duration is not None:
                message.destruct_at = now + timedelta(milliseconds=message.self_destruct_duration)
                update_fields.append("destruct_at")

        message.save(update_fields=update_fields)
        return True

    @staticmethod
    def edit(message: Message, content: str, now: datetime) -> Message:
        message.content = content
        message.is_edited = True
        message.edited_at = now
        message.save(update_fields=["content", "is_edited", "edited_at", "updated_at"])
        return message

    @staticmethod
    def delete(message_id: UUID | str) -> bool:
        deleted, _ = Message.objects.filter(id=message_id).delete()
        return deleted > 0

    @staticmethod
    def purge_group(group_id: UUID | str) -> int:
        """Bulk delete every message of a group; returns how many were removed."""
        _, per_model = Message.objects.in_group(group_id).delete()
        return per_model.get(Message._meta.label, 0)

    @staticmethod
    def due_for_destruction(now: datetime) -> list[Message]:
        return list(Message.objects.due_for_destruction(now))

    @staticmethod
    def report(*, message: Message, reported_by: str, reason: str) -> MessageReport:
        return MessageReport.objects.create(
            message_id=message.id,
            group_id=message.group_id,
            reported_by=reported_by,
            reason=reason,
        )
