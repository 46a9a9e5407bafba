"""
Serializers for chat API.

This module provides serializers for the chat system:
- Group serializers (read, create, join, member changes)
- Message serializers (read, create, edit, report)

Serializer Hierarchy:
    GroupSerializer: Full group state for members
    GroupCreateSerializer: Group creation with an expiry contract or preset
    JoinGroupSerializer: Join by code
    MemberSerializer: Target user for member/admin changes

    MessageSerializer: Message with read receipts and timers
    MessageCreateSerializer: Send new message
    MessageUpdateSerializer: Edit message content
    MessageReportSerializer / MessageReportCreateSerializer: Reports

Design Decisions:
    - Read and write serializers are separate for clarity
    - Write serializers only check shapes; length and range rules are
      enforced by the services so every caller gets the same errors
    - Serialized groups and messages are plain JSON, so the same
      representation is pushed over WebSockets
"""

from __future__ import annotations

from rest_framework import serializers

from core.exceptions import ValidationError as DomainValidationError

from .constants import GROUP_CONFIG, MESSAGE_CONFIG
from .contracts import PRESETS, from_storage
from .models import Group, Message, MessageReport, MessageType

# =============================================================================
# Fields
# =============================================================================


class ExpiryContractField(serializers.Field):
    """
    Expiry contract as its stored mapping.

    Accepts either a mapping such as {"type": "timed", "durationMillis": 3600000}
    or the name of a preset ("1h", "24h", "50_messages", ...).
    """

    default_error_messages = {
        "unknown_preset": "Unknown expiry preset '{value}'.",
    }

    def to_representation(self, value):
        return value

    def to_internal_value(self, data):
        if isinstance(data, str):
            if data not in PRESETS:
                self.fail("unknown_preset", value=data)
            return PRESETS[data]
        try:
            return from_storage(data)
        except DomainValidationError as exc:
            raise serializers.ValidationError(exc.message) from exc


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Full message serializer for message lists and live snapshots.

    timestamp is the creation time; destruct_at is only set once a
    self-destructing message has been read.
    """

    group_id = serializers.UUIDField(read_only=True)
    reply_to_id = serializers.UUIDField(read_only=True, allow_null=True)
    timestamp = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "group_id",
            "sender_id",
            "sender_name",
            "content",
            "message_type",
            "timestamp",
            "read_by",
            "is_read",
            "self_destruct_duration",
            "destruct_at",
            "reply_to_id",
            "is_edited",
            "edited_at",
        ]
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """
    Serializer for sending messages.

    Supports:
    - Text and image messages
    - Replies (reply_to_id in the same group)
    - Self-destruct timers in milliseconds after first read
    """

    content = serializers.CharField(
        trim_whitespace=False,
        allow_blank=True,
        help_text=f"Message content (max {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters)",
    )
    message_type = serializers.ChoiceField(
        choices=[(MessageType.TEXT, "Text"), (MessageType.IMAGE, "Image")],
        default=MessageType.TEXT,
        help_text="Type of message",
    )
    sender_name = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        help_text="Display name to show with the message",
    )
    reply_to_id = serializers.UUIDField(
        required=False,
        allow_null=True,
        help_text="Message being replied to (optional)",
    )
    self_destruct_duration = serializers.IntegerField(
        required=False,
        allow_null=True,
        min_value=1,
        help_text="Milliseconds after first read before the message is deleted",
    )


class MessageUpdateSerializer(serializers.Serializer):
    """Serializer for editing a message."""

    content = serializers.CharField(
        trim_whitespace=False,
        allow_blank=True,
        help_text="New message content",
    )


class MessageReportSerializer(serializers.ModelSerializer):
    """Read serializer for message reports."""

    class Meta:
        model = MessageReport
        fields = ["id", "message_id", "group_id", "reported_by", "reason", "created_at"]
        read_only_fields = fields


class MessageReportCreateSerializer(serializers.Serializer):
    """Serializer for reporting a message."""

    reason = serializers.CharField(
        allow_blank=True,
        help_text=f"Why the message is reported (max {MESSAGE_CONFIG.MAX_REPORT_REASON_LENGTH} characters)",
    )


# =============================================================================
# Group Serializers
# =============================================================================


class GroupSerializer(serializers.ModelSerializer):
    """
    Full group serializer for members.

    members and admin_ids are derived from membership rows; admin_ids
    always contains the creator.
    """

    members = serializers.ListField(child=serializers.CharField(), read_only=True)
    admin_ids = serializers.SerializerMethodField(help_text="User ids with admin rights")
    expiry_contract = ExpiryContractField(read_only=True)
    contract_description = serializers.SerializerMethodField(
        help_text="Human-readable description of the expiry contract"
    )
    expires_at = serializers.SerializerMethodField(
        help_text="Deadline for timed and inactivity contracts"
    )

    class Meta:
        model = Group
        fields = [
            "id",
            "name",
            "description",
            "created_by",
            "members",
            "admin_ids",
            "expiry_contract",
            "contract_description",
            "created_at",
            "last_active_at",
            "expires_at",
            "message_count",
            "join_code",
            "is_active",
            "max_members",
        ]
        read_only_fields = fields

    def get_admin_ids(self, obj: Group) -> list[str]:
        return sorted(obj.admin_ids)

    def get_contract_description(self, obj: Group) -> str:
        return obj.contract.describe()

    def get_expires_at(self, obj: Group) -> str | None:
        deadline = obj.expires_at()
        return serializers.DateTimeField().to_representation(deadline) if deadline else None


class GroupCreateSerializer(serializers.Serializer):
    """Serializer for creating a group."""

    name = serializers.CharField(
        allow_blank=True,
        help_text=f"Group name ({GROUP_CONFIG.MIN_NAME_LENGTH}-{GROUP_CONFIG.MAX_NAME_LENGTH} characters)",
    )
    description = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        help_text="Optional description",
    )
    expiry_contract = ExpiryContractField(
        help_text='Expiry contract mapping or preset name, e.g. "24h"',
    )
    max_members = serializers.IntegerField(
        required=False,
        default=GROUP_CONFIG.DEFAULT_MAX_MEMBERS,
        help_text=f"Capacity ({GROUP_CONFIG.MIN_MEMBERS}-{GROUP_CONFIG.MAX_MEMBERS})",
    )


class JoinGroupSerializer(serializers.Serializer):
    """Serializer for joining a group by code."""

    join_code = serializers.CharField(
        allow_blank=True,
        help_text="6-character join code (case-insensitive)",
    )


class MemberSerializer(serializers.Serializer):
    """Target user for member and admin changes."""

    user_id = serializers.CharField(help_text="User id of the target member")
