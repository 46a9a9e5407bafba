"""
Chat application configuration.

This app provides ephemeral group chat with:
- Groups that expire by time, message count or inactivity
- Admin-managed membership and join codes
- Read receipts and self-destructing messages
- Live snapshots over WebSockets
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"
