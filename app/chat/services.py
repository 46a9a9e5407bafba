"""
Chat system service layer.

This module provides the business logic for ephemeral group chat, enforcing
membership, admin and expiry rules on top of the stores.

Services:
    GroupService: Group lifecycle (create, join, members, admins, delete, expiry)
    MessageService: Message operations (send, read, edit, delete, search)
    SweeperService: Periodic retirement of expired groups and due messages

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures return ServiceResult.failure() with an error code
      from chat.constants.ERROR_CODES
    - Database outages become STORE_UNAVAILABLE failures; bugs still raise
    - Permission checks run while the group row is locked, so a decision is
      never made on membership that changes before the write
    - Every accepted user message advances the group's counter exactly once,
      after the message exists, and only then is expiry evaluated

Usage:
    from chat.contracts import MessageLimit
    from chat.services import GroupService, MessageService

    result = GroupService.create_group(
        name="Weekend trip",
        description="",
        created_by=user_id,
        contract=MessageLimit(max_messages=100),
    )
    if result.success:
        group = result.data

    result = MessageService.send_message(group.id, user_id, "Hello everyone!")
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from typing import TYPE_CHECKING

from django.db import DatabaseError, transaction
from django.utils import timezone

from core.exceptions import BaseApplicationError, ValidationError
from core.services import BaseService, ServiceResult

from . import broadcast
from .constants import (
    ERROR_CODES,
    EXPIRY_CONFIG,
    GROUP_CONFIG,
    JOIN_CODE_CONFIG,
    MESSAGE_CONFIG,
    SYSTEM_SENDER_ID,
    SYSTEM_SENDER_NAME,
)
from .contracts import format_duration, from_storage, validate_for_creation
from .directory import display_name
from .exceptions import CascadeFailureError
from .models import Group, GroupMembership, Message, MessageType
from .stores import GroupStore, MessageStore

if TYPE_CHECKING:
    from typing import Any

    from .contracts import ExpiryContract
    from .models import MessageReport

JOIN_CODE_PATTERN = re.compile(r"^[A-Z0-9]+$")


def _validate_group_name(name: Any) -> str:
    """Return the stripped name or raise ValidationError."""
    name = name.strip() if isinstance(name, str) else ""
    if not name:
        raise ValidationError("Group name cannot be empty")
    if len(name) < GROUP_CONFIG.MIN_NAME_LENGTH:
        raise ValidationError(
            f"Group name must be at least {GROUP_CONFIG.MIN_NAME_LENGTH} characters"
        )
    if len(name) > GROUP_CONFIG.MAX_NAME_LENGTH:
        raise ValidationError(
            f"Group name must be at most {GROUP_CONFIG.MAX_NAME_LENGTH} characters"
        )
    return name


def _validate_description(description: Any) -> str:
    if description is None:
        return ""
    if not isinstance(description, str):
        raise ValidationError("Group description must be text")
    description = description.strip()
    if len(description) > GROUP_CONFIG.MAX_DESCRIPTION_LENGTH:
        raise ValidationError(
            f"Group description must be at most {GROUP_CONFIG.MAX_DESCRIPTION_LENGTH} characters"
        )
    return description


def _validate_user_id(user_id: Any, label: str = "User id") -> str:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError(f"{label} cannot be empty")
    if user_id == SYSTEM_SENDER_ID:
        raise ValidationError(f"'{SYSTEM_SENDER_ID}' is a reserved user id")
    return user_id


def _validate_content(content: Any) -> str:
    """Return stripped message content or raise ValidationError."""
    content = content.strip() if isinstance(content, str) else ""
    if len(content) < MESSAGE_CONFIG.MIN_CONTENT_LENGTH:
        raise ValidationError("Message cannot be empty")
    if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
        raise ValidationError(
            f"Message must be at most {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters"
        )
    return content


def normalize_join_code(join_code: Any) -> str:
    """Strip and upper-case a join code, then check its format."""
    code = join_code.strip().upper() if isinstance(join_code, str) else ""
    if not code:
        raise ValidationError("Join code cannot be empty")
    if len(code) != JOIN_CODE_CONFIG.LENGTH:
        raise ValidationError(f"Join code must be {JOIN_CODE_CONFIG.LENGTH} characters")
    if not JOIN_CODE_PATTERN.match(code):
        raise ValidationError("Join code can only contain letters and numbers")
    return code


# =============================================================================
# GroupService
# =============================================================================


class GroupService(BaseService):
    """
    Service for group lifecycle operations.

    Methods:
        create_group: Create a group with its creator as sole member and admin
        join_group_by_code: Join an active group by its public code
        add_member / remove_member: Membership changes
        make_admin / revoke_admin: Admin changes
        update_group: Rename or re-describe a group
        regenerate_join_code: Issue a new join code
        delete_group: Purge messages, then deactivate
        increment_message_count_and_check_expiry: Count a message, expire if due
        get_expired_groups / cleanup_expired_groups: Sweeper support
        warn_expiring_groups: Post "expires soon" notices
    """

    @classmethod
    def create_group(
        cls,
        name: str,
        description: str,
        created_by: str,
        contract: ExpiryContract | dict,
        max_members: int = GROUP_CONFIG.DEFAULT_MAX_MEMBERS,
    ) -> ServiceResult[Group]:
        """
        Create a new group.

        Args:
            name: Display name (3-50 characters after stripping)
            description: Optional description
            created_by: User id of the creator
            contract: Expiry contract, or its stored mapping
            max_members: Capacity between 2 and 100

        Returns:
            ServiceResult with the new Group

        Error codes:
            VALIDATION_ERROR: Bad name, capacity or contract
            STORE_UNAVAILABLE: Database unavailable or no free join code
        """
        try:
            name = _validate_name_and_capacity(name, max_members)
            description = _validate_description(description)
            created_by = _validate_user_id(created_by, "Creator id")
            if isinstance(contract, dict):
                contract = from_storage(contract)
            validate_for_creation(contract)
        except ValidationError as exc:
            return ServiceResult.from_exception(exc)

        now = timezone.now()
        try:
            with cls.atomic():
                group = GroupStore.create(
                    name=name,
                    description=description,
                    created_by=created_by,
                    contract=contract,
                    max_members=max_members,
                    now=now,
                )
                MessageService._create_system_message(
                    group, f"Welcome to {group.name}! {contract.describe()}."
                )
                broadcast.group_changed(group.id, [created_by], reason="created")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, "create_group")

        cls.get_logger().info(
            f"User {created_by} created group {group.id} with {contract.to_storage()}"
        )
        return ServiceResult.success(group)

    @classmethod
    def join_group_by_code(cls, user_id: str, join_code: str) -> ServiceResult[Group]:
        """
        Join the active group holding a join code.

        Joining a group the user already belongs to returns it unchanged.

        Error codes:
            VALIDATION_ERROR: Malformed code
            NOT_FOUND: No active group with this code
            GROUP_EXPIRED: The group's contract has already run out
            GROUP_FULL: The group is at capacity
        """
        try:
            user_id = _validate_user_id(user_id)
            code = normalize_join_code(join_code)
        except ValidationError as exc:
            return ServiceResult.from_exception(exc)

        now = timezone.now()
        try:
            found = GroupStore.get_by_join_code(code)
            if found is None:
                return ServiceResult.failure(
                    "No active group with this join code", error_code=ERROR_CODES.NOT_FOUND
                )

            with cls.atomic():
                group = GroupStore.lock(found.id)
                if not group.is_active:
                    return ServiceResult.failure(
                        "No active group with this join code", error_code=ERROR_CODES.NOT_FOUND
                    )
                if group.is_member(user_id):
                    return ServiceResult.success(GroupStore.get(group.id))
                if group.has_expired(now):
                    return ServiceResult.failure(
                        "This group has expired", error_code=ERROR_CODES.GROUP_EXPIRED
                    )

                if GroupStore.add_member(group, user_id):
                    MessageService.notify_member_joined(group, user_id)
                    broadcast.group_changed(group.id, group.members, reason="joined")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"join_group_by_code {code}")

        cls.get_logger().info(f"User {user_id} joined group {group.id} by code")
        return ServiceResult.success(GroupStore.get(group.id))

    @classmethod
    def add_member(cls, group_id, user_id: str, added_by: str) -> ServiceResult[Group]:
        """
        Add a user to a group on behalf of an admin.

        Error codes:
            NOT_FOUND: Group does not exist
            GROUP_INACTIVE: Group was deleted
            FORBIDDEN: added_by is not an admin
            GROUP_EXPIRED: The group's contract has already run out
            GROUP_FULL: The group is at capacity
        """
        try:
            user_id = _validate_user_id(user_id)
        except ValidationError as exc:
            return ServiceResult.from_exception(exc)

        now = timezone.now()
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_active:
                    return _inactive()
                if not group.is_admin(added_by):
                    return ServiceResult.failure(
                        "Only admins can add members", error_code=ERROR_CODES.FORBIDDEN
                    )
                if group.has_expired(now):
                    return ServiceResult.failure(
                        "This group has expired", error_code=ERROR_CODES.GROUP_EXPIRED
                    )

                if GroupStore.add_member(group, user_id):
                    MessageService.notify_member_joined(group, user_id)
                    broadcast.group_changed(group.id, group.members, reason="joined")
                    cls.get_logger().info(f"User {user_id} added to group {group.id} by {added_by}")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"add_member {group_id}")

        return ServiceResult.success(GroupStore.get(group_id))

    @classmethod
    def remove_member(cls, group_id, user_id: str, removed_by: str) -> ServiceResult[Group]:
        """
        Remove a member, or let a member leave.

        Permission rules:
        - Anyone may remove themselves
        - Admins may remove other members
        - Nobody may remove the creator; the creator leaving dissolves the
          group, since a group must always contain its creator

        Removing a non-member is a no-op. The removed member's admin flag goes
        with their membership row.

        Error codes:
            NOT_FOUND: Group does not exist
            GROUP_INACTIVE: Group was deleted
            FORBIDDEN: Not allowed to remove this user
        """
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_active:
                    return _inactive()

                dissolve = user_id == group.created_by
                if dissolve and removed_by != group.created_by:
                    return ServiceResult.failure(
                        "The group creator cannot be removed", error_code=ERROR_CODES.FORBIDDEN
                    )
                if removed_by != user_id and not group.is_admin(removed_by):
                    return ServiceResult.failure(
                        "Only admins can remove other members", error_code=ERROR_CODES.FORBIDDEN
                    )

                if not dissolve:
                    member_ids = group.members
                    if GroupStore.remove_member(group, user_id):
                        MessageService.notify_member_left(group, user_id)
                        broadcast.group_changed(group.id, member_ids, reason="left")
                        cls.get_logger().info(
                            f"User {user_id} removed from group {group.id} by {removed_by}"
                        )
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"remove_member {group_id}")

        if dissolve:
            cls.get_logger().info(f"Creator {user_id} left group {group_id}, dissolving it")
            return cls.delete_group(group_id)
        return ServiceResult.success(GroupStore.get(group_id))

    @classmethod
    def make_admin(cls, group_id, user_id: str, promoted_by: str) -> ServiceResult[Group]:
        """
        Grant admin rights to a member.

        Error codes:
            NOT_FOUND: Group does not exist, or user is not a member
            GROUP_INACTIVE: Group was deleted
            FORBIDDEN: promoted_by is not an admin
        """
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_active:
                    return _inactive()
                if not group.is_admin(promoted_by):
                    return ServiceResult.failure(
                        "Only admins can promote members", error_code=ERROR_CODES.FORBIDDEN
                    )
                if not group.is_member(user_id):
                    return ServiceResult.failure(
                        "User is not a member of this group", error_code=ERROR_CODES.NOT_FOUND
                    )

                if GroupStore.set_admin(group, user_id, True):
                    broadcast.group_changed(group.id, reason="admins")
                    cls.get_logger().info(f"User {user_id} promoted in group {group.id}")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"make_admin {group_id}")

        return ServiceResult.success(GroupStore.get(group_id))

    @classmethod
    def revoke_admin(cls, group_id, user_id: str, removed_by: str) -> ServiceResult[Group]:
        """
        Take admin rights away from a member.

        The creator's admin rights can never be revoked, whoever asks.

        Error codes:
            NOT_FOUND: Group does not exist
            FORBIDDEN: Target is the creator, or removed_by is not an admin
            GROUP_INACTIVE: Group was deleted
        """
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if user_id == group.created_by:
                    return ServiceResult.failure(
                        "The group creator is always an admin", error_code=ERROR_CODES.FORBIDDEN
                    )
                if not group.is_active:
                    return _inactive()
                if not group.is_admin(removed_by):
                    return ServiceResult.failure(
                        "Only admins can revoke admin rights", error_code=ERROR_CODES.FORBIDDEN
                    )

                if group.is_member(user_id) and GroupStore.set_admin(group, user_id, False):
                    broadcast.group_changed(group.id, reason="admins")
                    cls.get_logger().info(f"User {user_id} demoted in group {group.id}")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"revoke_admin {group_id}")

        return ServiceResult.success(GroupStore.get(group_id))

    @classmethod
    def update_group(
        cls,
        group_id,
        updates: dict[str, Any],
        updated_by: str | None = None,
    ) -> ServiceResult[Group]:
        """
        Partially update a group's name and/or description.

        Args:
            group_id: Group to update
            updates: Mapping of field name to new value
            updated_by: When given, must be an admin of the group

        Error codes:
            VALIDATION_ERROR: Immutable or unknown field, or invalid value
            NOT_FOUND: Group does not exist
            GROUP_INACTIVE: Group was deleted
            FORBIDDEN: updated_by is not an admin
        """
        try:
            changes = _validate_updates(updates)
        except ValidationError as exc:
            return ServiceResult.from_exception(exc)

        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_active:
                    return _inactive()
                if updated_by is not None and not group.is_admin(updated_by):
                    return ServiceResult.failure(
                        "Only admins can update the group", error_code=ERROR_CODES.FORBIDDEN
                    )
                if changes:
                    GroupStore.update_fields(group, **changes)
                    broadcast.group_changed(group.id, group.members, reason="updated")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"update_group {group_id}")

        cls.get_logger().info(f"Updated group {group_id}: {sorted(changes)}")
        return ServiceResult.success(GroupStore.get(group_id))

    @classmethod
    def regenerate_join_code(cls, group_id) -> ServiceResult[str]:
        """
        Replace a group's join code. Callers must check admin rights.

        Error codes:
            NOT_FOUND: Group does not exist
            GROUP_INACTIVE: Group was deleted
            STORE_UNAVAILABLE: No free join code could be allocated
        """
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_active:
                    return _inactive()
                join_code = GroupStore.set_join_code(group)
                broadcast.group_changed(group.id, reason="join_code")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"regenerate_join_code {group_id}")

        cls.get_logger().info(f"Regenerated join code for group {group_id}")
        return ServiceResult.success(join_code)

    @classmethod
    def delete_group(cls, group_id) -> ServiceResult[Group]:
        """
        Delete a group: purge its messages, then mark it inactive.

        Both steps run in one transaction. If the purge fails nothing is
        committed, the group stays active and the whole deletion can be
        retried. Deleting an inactive group succeeds and purges any
        messages left behind.

        Error codes:
            NOT_FOUND: Group does not exist
            CASCADE_FAILURE: Messages could not be purged; group left active
        """
        now = timezone.now()
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                try:
                    purged = MessageStore.purge_group(group.id)
                except DatabaseError as exc:
                    raise CascadeFailureError(
                        "Could not delete the group's messages. Please try again."
                    ) from exc

                was_active = group.is_active
                if was_active:
                    GroupStore.deactivate(group, now)
                member_ids = group.members
                broadcast.group_changed(group.id, member_ids, reason="deleted")
                broadcast.messages_changed(group.id, reason="purged")
        except CascadeFailureError as exc:
            cls.get_logger().error(f"Message purge failed for group {group_id}", exc_info=True)
            return ServiceResult.from_exception(exc)
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"delete_group {group_id}")

        if was_active:
            cls.get_logger().info(f"Deleted group {group_id}, purged {purged} messages")
        else:
            cls.get_logger().info(f"Group {group_id} already inactive, purged {purged} messages")
        return ServiceResult.success(group)

    @classmethod
    def increment_message_count_and_check_expiry(cls, group_id) -> ServiceResult[Group]:
        """
        Count one accepted message and delete the group if that expired it.

        Must be called exactly once per accepted message, after the message
        is stored, so a message-limit contract fires on the message that
        reaches the limit.

        Returns:
            ServiceResult with the group; is_active is False if it expired
        """
        now = timezone.now()
        try:
            group = GroupStore.record_message(group_id, now)
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"increment_message_count {group_id}")

        if not group.has_expired(now):
            broadcast.group_changed(group.id, reason="activity")
            return ServiceResult.success(group)

        cls.get_logger().info(
            f"Group {group_id} expired after message {group.message_count}, deleting"
        )
        return cls.delete_group(group_id)

    @classmethod
    def get_expired_groups(cls) -> ServiceResult[list[Group]]:
        """Active groups whose contract says they are dead."""
        now = timezone.now()
        try:
            candidates = GroupStore.list_active()
        except DatabaseError as exc:
            return cls.handle_exception(exc, "get_expired_groups")

        expired = []
        for group in candidates:
            try:
                if group.has_expired(now):
                    expired.append(group)
            except ValidationError:
                cls.get_logger().error(
                    f"Group {group.id} has a malformed expiry contract", exc_info=True
                )
        return ServiceResult.success(expired)

    @classmethod
    def cleanup_expired_groups(cls) -> ServiceResult[int]:
        """
        Delete every expired group, continuing past individual failures.

        Returns:
            ServiceResult with the number of groups deleted
        """
        result = cls.get_expired_groups()
        if not result.success:
            return result

        deleted = 0
        for group in result.data:
            outcome = cls.delete_group(group.id)
            if outcome.success:
                deleted += 1
            else:
                cls.get_logger().warning(
                    f"Failed to delete expired group {group.id}: "
                    f"{outcome.error} ({outcome.error_code})"
                )

        if deleted:
            cls.get_logger().info(f"Cleaned up {deleted} expired groups")
        return ServiceResult.success(deleted)

    @classmethod
    def get_group(cls, group_id, user_id: str | None = None) -> ServiceResult[Group]:
        """
        Fetch a group, optionally requiring membership.

        Error codes:
            NOT_FOUND: Group does not exist
            FORBIDDEN: user_id given and not a member
        """
        try:
            group = GroupStore.get(group_id)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"get_group {group_id}")

        if group is None:
            return ServiceResult.failure("Group not found", error_code=ERROR_CODES.NOT_FOUND)
        if user_id is not None and not group.is_member(user_id):
            return ServiceResult.failure(
                "You are not a member of this group", error_code=ERROR_CODES.FORBIDDEN
            )
        return ServiceResult.success(group)

    @classmethod
    def get_user_groups(cls, user_id: str) -> ServiceResult[list[Group]]:
        """Active groups the user belongs to, most recently active first."""
        try:
            return ServiceResult.success(GroupStore.list_for_member(user_id))
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"get_user_groups {user_id}")

    @classmethod
    def check_group_expiry(cls, group_id) -> ServiceResult[bool]:
        """
        Evaluate one group's contract now and delete it if expired.

        Returns:
            ServiceResult with True if the group is (now) dead
        """
        try:
            group = GroupStore.get(group_id)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"check_group_expiry {group_id}")

        if group is None:
            return ServiceResult.failure("Group not found", error_code=ERROR_CODES.NOT_FOUND)
        if not group.is_active:
            return ServiceResult.success(True)
        if not group.has_expired():
            return ServiceResult.success(False)

        result = cls.delete_group(group_id)
        if not result.success:
            return result
        return ServiceResult.success(True)

    @classmethod
    def update_group_activity(cls, group_id) -> ServiceResult[None]:
        """Refresh last_active_at without counting a message."""
        try:
            if GroupStore.touch(group_id, timezone.now()):
                broadcast.group_changed(group_id, reason="activity")
                return ServiceResult.success(None)
            group = GroupStore.get(group_id)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"update_group_activity {group_id}")

        if group is None:
            return ServiceResult.failure("Group not found", error_code=ERROR_CODES.NOT_FOUND)
        return _inactive()

    @classmethod
    def warn_expiring_groups(
        cls,
        window: timedelta = timedelta(seconds=EXPIRY_CONFIG.WARNING_WINDOW_SECONDS),
    ) -> ServiceResult[int]:
        """
        Post a one-time "Group expires in ..." notice to groups close to their deadline.

        Only timed and inactivity groups have deadlines. Groups already past
        their deadline are left for cleanup_expired_groups.

        Returns:
            ServiceResult with the number of warnings posted
        """
        now = timezone.now()
        try:
            candidates = list(Group.objects.with_deadlines().filter(expiry_warning_sent_at__isnull=True))
        except DatabaseError as exc:
            return cls.handle_exception(exc, "warn_expiring_groups")

        warned = 0
        for group in candidates:
            remaining = group.remaining_time(now)
            if remaining is None or remaining <= timedelta(0) or remaining > window:
                continue
            try:
                with cls.atomic():
                    if GroupStore.mark_warning_sent(group.id, now):
                        MessageService.notify_group_expiry_warning(group, remaining)
                        warned += 1
            except DatabaseError:
                cls.get_logger().error(f"Failed to warn group {group.id}", exc_info=True)

        if warned:
            cls.get_logger().info(f"Posted expiry warnings to {warned} groups")
        return ServiceResult.success(warned)


def _validate_name_and_capacity(name: Any, max_members: Any) -> str:
    name = _validate_group_name(name)
    if isinstance(max_members, bool) or not isinstance(max_members, int):
        raise ValidationError("Max members must be a whole number")
    if not GROUP_CONFIG.MIN_MEMBERS <= max_members <= GROUP_CONFIG.MAX_MEMBERS:
        raise ValidationError(
            f"Max members must be between {GROUP_CONFIG.MIN_MEMBERS} "
            f"and {GROUP_CONFIG.MAX_MEMBERS}"
        )
    return name


def _validate_updates(updates: Any) -> dict[str, Any]:
    if not isinstance(updates, dict):
        raise ValidationError("Updates must be a mapping of field names to values")

    changes: dict[str, Any] = {}
    for field_name, value in updates.items():
        if field_name in GROUP_CONFIG.IMMUTABLE_FIELDS:
            raise ValidationError(f"Field '{field_name}' cannot be changed")
        if field_name not in GROUP_CONFIG.UPDATABLE_FIELDS:
            raise ValidationError(f"Unknown group field '{field_name}'")
        if field_name == "name":
            changes["name"] = _validate_group_name(value)
        else:
            changes["description"] = _validate_description(value)
    return changes


def _inactive() -> ServiceResult:
    return ServiceResult.failure(
        "This group is no longer active", error_code=ERROR_CODES.GROUP_INACTIVE
    )


# =============================================================================
# MessageService
# =============================================================================


class MessageService(BaseService):
    """
    Service for message operations.

    Methods:
        send_message: Send a user message and count it against the group
        mark_read: Record a read receipt, arming self-destruct timers
        edit_message / delete_message: Sender-only changes
        get_messages_to_destruct: Read messages past their self-destruct deadline
        get_group_messages / search_messages / get_unread_count: Member reads
        report_message: File a report against a message
        send_system_message and notify_*: System notices
    """

    @classmethod
    def send_message(
        cls,
        group_id,
        sender_id: str,
        content: str,
        sender_name: str = "",
        message_type: str = MessageType.TEXT,
        reply_to_id=None,
        self_destruct_duration: int | None = None,
    ) -> ServiceResult[Message]:
        """
        Send a message to a group.

        The message is stored first and then counted against the group; if
        that count meets a message-limit contract, the group is deleted as
        part of the same call.

        Args:
            group_id: Target group
            sender_id: User id of the sender
            content: Message text (1-1000 characters after stripping)
            sender_name: Display name; looked up when blank
            message_type: "text" or "image"
            reply_to_id: Optional message in the same group to reply to
            self_destruct_duration: Milliseconds after first read before deletion

        Returns:
            ServiceResult with the new Message

        Error codes:
            VALIDATION_ERROR: Bad content, sender, type, timer or reply target
            NOT_FOUND: Group does not exist
            FORBIDDEN: Sender is not a member
            GROUP_INACTIVE: Group was deleted
            GROUP_EXPIRED: Group's contract has run out
            STORE_UNAVAILABLE / CASCADE_FAILURE: Counting the message failed;
                the message is not kept
        """
        try:
            content = _validate_content(content)
            sender_id = _validate_user_id(sender_id, "Sender id")
            if message_type not in (MessageType.TEXT, MessageType.IMAGE):
                raise ValidationError(f"Cannot send messages of type '{message_type}'")
            if self_destruct_duration is not None and (
                isinstance(self_destruct_duration, bool)
                or not isinstance(self_destruct_duration, int)
                or self_destruct_duration <= 0
            ):
                raise ValidationError("Self-destruct duration must be a positive number of milliseconds")
        except ValidationError as exc:
            return ServiceResult.from_exception(exc)

        now = timezone.now()
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_member(sender_id):
                    return ServiceResult.failure(
                        "You are not a member of this group", error_code=ERROR_CODES.FORBIDDEN
                    )
                if not group.is_active:
                    return _inactive()
                if group.has_expired(now):
                    return ServiceResult.failure(
                        "This group has expired", error_code=ERROR_CODES.GROUP_EXPIRED
                    )

                reply_to = None
                if reply_to_id is not None:
                    reply_to = MessageStore.get(reply_to_id)
                    if reply_to is None or reply_to.group_id != group.id:
                        return ServiceResult.failure(
                            "Reply target not found in this group",
                            error_code=ERROR_CODES.VALIDATION_ERROR,
                        )

                message = MessageStore.create(
                    group=group,
                    sender_id=sender_id,
                    sender_name=(sender_name or "").strip() or display_name(sender_id),
                    content=content,
                    message_type=message_type,
                    reply_to=reply_to,
                    self_destruct_duration=self_destruct_duration,
                )
                broadcast.messages_changed(group.id, reason="sent")

                counted = GroupService.increment_message_count_and_check_expiry(group.id)
                if not counted.success:
                    # An uncounted message must not survive
                    transaction.set_rollback(True)
                    cls.get_logger().warning(
                        f"Send to group {group.id} rolled back, message not counted: "
                        f"{counted.error} ({counted.error_code})"
                    )
                    return ServiceResult.failure(counted.error, error_code=counted.error_code)
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"send_message {group_id}")

        cls.get_logger().debug(f"User {sender_id} sent message {message.id} to group {group_id}")
        return ServiceResult.success(message)

    @classmethod
    def mark_read(cls, message_id, user_id: str) -> ServiceResult[Message]:
        """
        Add a user to a message's readers.

        Idempotent. The first reader flips is_read and, for self-destructing
        messages, starts the destruction timer.

        Error codes:
            NOT_FOUND: Message does not exist
            FORBIDDEN: Reader is not a member of the group
        """
        now = timezone.now()
        try:
            with cls.atomic():
                message = MessageStore.lock(message_id)
                if not GroupMembership.objects.filter(
                    group_id=message.group_id, user_id=user_id
                ).exists():
                    return ServiceResult.failure(
                        "You are not a member of this group", error_code=ERROR_CODES.FORBIDDEN
                    )
                if MessageStore.mark_read(message, user_id, now):
                    broadcast.messages_changed(message.group_id, reason="read")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"mark_read {message_id}")

        return ServiceResult.success(message)

    @classmethod
    def edit_message(cls, message_id, content: str, editor_id: str) -> ServiceResult[Message]:
        """
        Edit a message's content. Only the sender may edit; system messages never.

        Error codes:
            VALIDATION_ERROR: Bad content
            NOT_FOUND: Message does not exist
            FORBIDDEN: Not the sender, or a system message
        """
        try:
            content = _validate_content(content)
        except ValidationError as exc:
            return ServiceResult.from_exception(exc)

        now = timezone.now()
        try:
            with cls.atomic():
                message = MessageStore.lock(message_id)
                if message.is_system_message:
                    return ServiceResult.failure(
                        "System messages cannot be edited", error_code=ERROR_CODES.FORBIDDEN
                    )
                if message.sender_id != editor_id:
                    return ServiceResult.failure(
                        "You can only edit your own messages", error_code=ERROR_CODES.FORBIDDEN
                    )
                MessageStore.edit(message, content, now)
                broadcast.messages_changed(message.group_id, reason="edited")
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"edit_message {message_id}")

        cls.get_logger().info(f"User {editor_id} edited message {message_id}")
        return ServiceResult.success(message)

    @classmethod
    def delete_message(cls, message_id, deleted_by: str, elevated: bool = False) -> ServiceResult[None]:
        """
        Delete a message.

        User messages can only be deleted by their sender. System messages
        can only be deleted with ``elevated=True``; the caller vouches that
        deleted_by holds admin rights.

        Error codes:
            NOT_FOUND: Message does not exist
            FORBIDDEN: Not allowed to delete this message
        """
        try:
            message = MessageStore.get(message_id)
            if message is None:
                return ServiceResult.failure("Message not found", error_code=ERROR_CODES.NOT_FOUND)

            if message.is_system_message:
                if not elevated:
                    return ServiceResult.failure(
                        "Only admins can delete system messages", error_code=ERROR_CODES.FORBIDDEN
                    )
            elif message.sender_id != deleted_by:
                return ServiceResult.failure(
                    "You can only delete your own messages", error_code=ERROR_CODES.FORBIDDEN
                )

            with cls.atomic():
                MessageStore.delete(message.id)
                broadcast.messages_changed(message.group_id, reason="deleted")
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"delete_message {message_id}")

        cls.get_logger().info(f"User {deleted_by} deleted message {message_id}")
        return ServiceResult.success(None)

    @classmethod
    def get_messages_to_destruct(cls) -> ServiceResult[list[Message]]:
        """Read messages whose self-destruct deadline has passed."""
        try:
            return ServiceResult.success(MessageStore.due_for_destruction(timezone.now()))
        except DatabaseError as exc:
            return cls.handle_exception(exc, "get_messages_to_destruct")

    @classmethod
    def get_group_messages(
        cls,
        group_id,
        user_id: str,
        limit: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE,
        before_message_id=None,
    ) -> ServiceResult[list[Message]]:
        """
        A chronological page of a group's messages for a member.

        Args:
            limit: Page size (1-100)
            before_message_id: Return messages older than this one

        Error codes:
            VALIDATION_ERROR: Bad limit
            NOT_FOUND: Group or cursor message does not exist
            FORBIDDEN: Not a member
        """
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            return ServiceResult.failure(
                "Limit must be a positive number", error_code=ERROR_CODES.VALIDATION_ERROR
            )
        limit = min(limit, MESSAGE_CONFIG.MAX_PAGE_SIZE)

        access = GroupService.get_group(group_id, user_id)
        if not access.success:
            return access

        try:
            before = None
            if before_message_id is not None:
                before = MessageStore.get(before_message_id)
                if before is None or before.group_id != access.data.id:
                    return ServiceResult.failure(
                        "Message not found", error_code=ERROR_CODES.NOT_FOUND
                    )
            return ServiceResult.success(MessageStore.page(access.data.id, limit, before))
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"get_group_messages {group_id}")

    @classmethod
    def search_messages(cls, group_id, query: str, user_id: str) -> ServiceResult[list[Message]]:
        """
        Case-insensitive search over content and sender name of recent messages.

        Only the newest messages of the group are scanned. A blank query
        returns nothing.
        """
        access = GroupService.get_group(group_id, user_id)
        if not access.success:
            return access

        query = query.strip() if isinstance(query, str) else ""
        if not query:
            return ServiceResult.success([])

        try:
            return ServiceResult.success(MessageStore.search(access.data.id, query))
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"search_messages {group_id}")

    @classmethod
    def get_unread_count(cls, group_id, user_id: str) -> ServiceResult[int]:
        """Messages from other members the user has not read; system notices excluded."""
        access = GroupService.get_group(group_id, user_id)
        if not access.success:
            return access

        try:
            return ServiceResult.success(MessageStore.unread_count(access.data.id, user_id))
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"get_unread_count {group_id}")

    @classmethod
    def get_latest_group_messages(cls, group_ids: list) -> ServiceResult[dict[str, Message]]:
        """Latest message per group, keyed by group id string; empty groups omitted."""
        try:
            return ServiceResult.success(MessageStore.latest_for_groups(group_ids))
        except DatabaseError as exc:
            return cls.handle_exception(exc, "get_latest_group_messages")

    @classmethod
    def get_message(cls, message_id) -> ServiceResult[Message]:
        try:
            message = MessageStore.get(message_id)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"get_message {message_id}")
        if message is None:
            return ServiceResult.failure("Message not found", error_code=ERROR_CODES.NOT_FOUND)
        return ServiceResult.success(message)

    @classmethod
    def report_message(cls, message_id, reported_by: str, reason: str) -> ServiceResult[MessageReport]:
        """
        File a report against a message.

        Error codes:
            VALIDATION_ERROR: Blank or overlong reason
            NOT_FOUND: Message does not exist
            FORBIDDEN: Reporter is not a member of the group
        """
        reason = reason.strip() if isinstance(reason, str) else ""
        if not reason:
            return ServiceResult.failure(
                "Report reason cannot be empty", error_code=ERROR_CODES.VALIDATION_ERROR
            )
        if len(reason) > MESSAGE_CONFIG.MAX_REPORT_REASON_LENGTH:
            return ServiceResult.failure(
                f"Report reason must be at most {MESSAGE_CONFIG.MAX_REPORT_REASON_LENGTH} characters",
                error_code=ERROR_CODES.VALIDATION_ERROR,
            )

        try:
            message = MessageStore.get(message_id)
            if message is None:
                return ServiceResult.failure("Message not found", error_code=ERROR_CODES.NOT_FOUND)
            if not GroupMembership.objects.filter(
                group_id=message.group_id, user_id=reported_by
            ).exists():
                return ServiceResult.failure(
                    "You are not a member of this group", error_code=ERROR_CODES.FORBIDDEN
                )
            report = MessageStore.report(message=message, reported_by=reported_by, reason=reason)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"report_message {message_id}")

        cls.get_logger().warning(f"User {reported_by} reported message {message_id}: {reason}")
        return ServiceResult.success(report)

    @classmethod
    def purge_group_messages(cls, group_id) -> ServiceResult[int]:
        """Bulk delete every message of a group."""
        try:
            with cls.atomic():
                count = MessageStore.purge_group(group_id)
                broadcast.messages_changed(group_id, reason="purged")
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"purge_group_messages {group_id}")
        return ServiceResult.success(count)

    @classmethod
    def send_system_message(cls, group_id, content: str) -> ServiceResult[Message]:
        """
        Post a system notice to an active group.

        System messages are always read and do not count towards the
        group's message total.
        """
        try:
            with cls.atomic():
                group = GroupStore.lock(group_id)
                if not group.is_active:
                    return _inactive()
                message = cls._create_system_message(group, content)
        except BaseApplicationError as exc:
            return ServiceResult.from_exception(exc)
        except DatabaseError as exc:
            return cls.handle_exception(exc, f"send_system_message {group_id}")
        return ServiceResult.success(message)

    @classmethod
    def notify_member_joined(cls, group: Group, user_id: str) -> Message:
        return cls._create_system_message(group, f"{display_name(user_id)} joined the group")

    @classmethod
    def notify_member_left(cls, group: Group, user_id: str) -> Message:
        return cls._create_system_message(group, f"{display_name(user_id)} left the group")

    @classmethod
    def notify_group_expiry_warning(cls, group: Group, remaining: timedelta) -> Message:
        return cls._create_system_message(
            group, f"⚠️ Group expires in {format_duration(remaining)}"
        )

    @classmethod
    def _create_system_message(cls, group: Group, content: str) -> Message:
        """
        Internal: Create a system message.

        System messages have:
        - sender_id = "system", sender_name = "System"
        - message_type = SYSTEM
        - is_read = True

        This method should be called within an existing transaction.
        """
        message = MessageStore.create(
            group=group,
            sender_id=SYSTEM_SENDER_ID,
            sender_name=SYSTEM_SENDER_NAME,
            content=content,
            message_type=MessageType.SYSTEM,
            is_read=True,
        )
        broadcast.messages_changed(group.id, reason="system")
        return message


# =============================================================================
# SweeperService
# =============================================================================


@dataclass
class SweepSummary:
    """Outcome of one sweeper run."""

    expired_groups_deleted: int = 0
    messages_destroyed: int = 0
    failures: int = 0


class SweeperService(BaseService):
    """
    Retires expired groups and self-destructing messages.

    Stateless and idempotent: running it twice in a row does nothing the
    second time. Individual failures are logged and skipped.
    """

    @classmethod
    def run(cls) -> SweepSummary:
        summary = SweepSummary()

        groups = GroupService.cleanup_expired_groups()
        if groups.success:
            summary.expired_groups_deleted = groups.data
        else:
            summary.failures += 1

        destroyed = cls.destroy_due_messages()
        summary.messages_destroyed = destroyed.messages_destroyed
        summary.failures += destroyed.failures

        cls.get_logger().info(
            f"Sweep finished: {summary.expired_groups_deleted} groups, "
            f"{summary.messages_destroyed} messages, {summary.failures} failures"
        )
        return summary

    @classmethod
    def destroy_due_messages(cls) -> SweepSummary:
        """Delete every read message whose self-destruct deadline has passed."""
        summary = SweepSummary()

        due = MessageService.get_messages_to_destruct()
        if not due.success:
            summary.failures += 1
            return summary

        for message in due.data:
            try:
                with cls.atomic():
                    if MessageStore.delete(message.id):
                        broadcast.messages_changed(message.group_id, reason="destroyed")
                        summary.messages_destroyed += 1
            except DatabaseError:
                cls.get_logger().error(f"Failed to destroy message {message.id}", exc_info=True)
                summary.failures += 1

        return summary
