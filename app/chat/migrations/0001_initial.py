"""
Initial schema for ephemeral group chat.

Creates:
    - Group with its expiry contract, counters and join code
    - GroupMembership (one row per member, admin flag)
    - Message with read receipts, replies and self-destruct timers
    - MessageReport
"""

import uuid

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Group",
            fields=[
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        db_index=True,
                        default=django.utils.timezone.now,
                        help_text="Timestamp when this group was created",
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        help_text="Display name of the group",
                        max_length=50,
                    ),
                ),
                (
                    "description",
                    models.TextField(
                        blank=True,
                        default="",
                        help_text="Optional description of the group",
                    ),
                ),
                (
                    "created_by",
                    models.CharField(
                        db_index=True,
                        help_text="User id of the creator (always a member and admin)",
                        max_length=128,
                    ),
                ),
                (
                    "expiry_contract",
                    models.JSONField(
                        help_text='Expiry contract, e.g. {"type": "timed", "durationMillis": 3600000}',
                    ),
                ),
                (
                    "last_active_at",
                    models.DateTimeField(
                        db_index=True,
                        help_text="Timestamp of the most recent activity in the group",
                    ),
                ),
                (
                    "message_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of accepted user messages",
                    ),
                ),
                (
                    "join_code",
                    models.CharField(
                        db_index=True,
                        help_text="Public code used to join the group",
                        max_length=6,
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True,
                        default=True,
                        help_text="False once the group has been deleted or expired",
                    ),
                ),
                (
                    "max_members",
                    models.PositiveSmallIntegerField(
                        default=50,
                        help_text="Maximum number of members",
                    ),
                ),
                (
                    "deactivated_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the group was deactivated",
                        null=True,
                    ),
                ),
                (
                    "expiry_warning_sent_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the expiry warning message was posted",
                        null=True,
                    ),
                ),
            ],
            options={
                "db_table": "chat_group",
                "ordering": ["-last_active_at", "-created_at"],
                "indexes": [
                    models.Index(
                        fields=["is_active", "last_active_at"],
                        name="chat_group_active_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("max_members__gte", 2), ("max_members__lte", 100)),
                        name="chat_group_max_members_range",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("is_active", True)),
                        fields=("join_code",),
                        name="unique_active_join_code",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="GroupMembership",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "user_id",
                    models.CharField(
                        db_index=True,
                        help_text="User id of the member",
                        max_length=128,
                    ),
                ),
                (
                    "is_admin",
                    models.BooleanField(
                        default=False,
                        help_text="Whether this member is a group admin",
                    ),
                ),
                (
                    "group",
                    models.ForeignKey(
                        help_text="Group this membership belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="chat.group",
                    ),
                ),
            ],
            options={
                "db_table": "chat_group_membership",
                "ordering": ["created_at", "id"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("group", "user_id"),
                        name="unique_group_membership",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "sender_id",
                    models.CharField(
                        db_index=True,
                        help_text='User id of the sender ("system" for system messages)',
                        max_length=128,
                    ),
                ),
                (
                    "sender_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Display name of the sender when the message was sent",
                        max_length=150,
                    ),
                ),
                ("content", models.TextField(help_text="Message text")),
                (
                    "read_by",
                    models.JSONField(
                        blank=True,
                        default=list,
                        help_text="User ids that have read this message",
                    ),
                ),
                (
                    "is_read",
                    models.BooleanField(
                        default=False,
                        help_text="True once at least one user has read the message",
                    ),
                ),
                (
                    "first_read_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the message was first read",
                        null=True,
                    ),
                ),
                (
                    "self_destruct_duration",
                    models.PositiveBigIntegerField(
                        blank=True,
                        help_text="Milliseconds after first read before the message is deleted",
                        null=True,
                    ),
                ),
                (
                    "destruct_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the message becomes due for self-destruction",
                        null=True,
                    ),
                ),
                (
                    "message_type",
                    models.CharField(
                        choices=[("text", "Text"), ("image", "Image"), ("system", "System")],
                        db_index=True,
                        default="text",
                        help_text="Type of message (text, image or system)",
                        max_length=10,
                    ),
                ),
                (
                    "is_edited",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the content was edited after sending",
                    ),
                ),
                (
                    "edited_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the message was last edited",
                        null=True,
                    ),
                ),
                (
                    "group",
                    models.ForeignKey(
                        help_text="Group this message belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chat.group",
                    ),
                ),
                (
                    "reply_to",
                    models.ForeignKey(
                        blank=True,
                        help_text="Message this one replies to (same group)",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="replies",
                        to="chat.message",
                    ),
                ),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["group", "created_at", "id"],
                        name="chat_msg_group_cursor_idx",
                    ),
                    models.Index(
                        condition=models.Q(("destruct_at__isnull", False)),
                        fields=["is_read", "destruct_at"],
                        name="chat_msg_destruct_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="MessageReport",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True,
                        primary_key=True,
                        serialize=False,
                        verbose_name="ID",
                    ),
                ),
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "message_id",
                    models.UUIDField(db_index=True, help_text="Id of the reported message"),
                ),
                (
                    "group_id",
                    models.UUIDField(db_index=True, help_text="Id of the group the message was in"),
                ),
                (
                    "reported_by",
                    models.CharField(help_text="User id of the reporter", max_length=128),
                ),
                ("reason", models.TextField(help_text="Why the message was reported")),
            ],
            options={
                "db_table": "chat_message_report",
                "ordering": ["-created_at"],
            },
        ),
    ]
