"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Group management
- Membership viewing
- Message moderation and reports
"""

from django.contrib import admin

from chat.models import Group, GroupMembership, Message, MessageReport


class GroupMembershipInline(admin.TabularInline):
    """Inline display of members in group admin."""

    model = GroupMembership
    extra = 0
    readonly_fields = ["user_id", "is_admin", "created_at"]


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    """Admin interface for Group model."""

    list_display = [
        "id",
        "name",
        "created_by",
        "contract_type",
        "message_count",
        "is_active",
        "last_active_at",
    ]
    list_filter = ["is_active", "created_at"]
    search_fields = ["name", "join_code", "id"]
    readonly_fields = [
        "created_at",
        "updated_at",
        "last_active_at",
        "message_count",
        "deactivated_at",
        "expiry_warning_sent_at",
    ]
    inlines = [GroupMembershipInline]
    ordering = ["-last_active_at"]

    @admin.display(description="Contract")
    def contract_type(self, obj: Group) -> str:
        return (obj.expiry_contract or {}).get("type", "")


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "group",
        "sender_id",
        "message_type",
        "content_preview",
        "is_read",
        "destruct_at",
        "created_at",
    ]
    list_filter = ["message_type", "is_read", "created_at"]
    search_fields = ["content", "sender_id", "sender_name"]
    readonly_fields = ["created_at", "updated_at", "first_read_at", "destruct_at", "edited_at"]
    raw_id_fields = ["group", "reply_to"]
    ordering = ["-created_at"]

    @admin.display(description="Content Preview")
    def content_preview(self, obj: Message) -> str:
        """Return truncated content for list display."""
        max_length = 50
        if len(obj.content) > max_length:
            return obj.content[:max_length] + "..."
        return obj.content


@admin.register(MessageReport)
class MessageReportAdmin(admin.ModelAdmin):
    list_display = ["id", "message_id", "group_id", "reported_by", "created_at"]
    search_fields = ["reason", "reported_by"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-created_at"]
