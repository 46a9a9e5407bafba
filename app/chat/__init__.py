"""
Chat app for ephemeral group messaging.

This app handles:
- Groups with expiry contracts (timed, message limit, inactivity)
- Membership, admins and join codes
- Messages with read receipts, replies and self-destruct timers
- Periodic sweeping of expired groups and due messages (Celery)
- WebSocket snapshot streams

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.contracts import PRESETS
    from chat.services import GroupService, MessageService

    result = GroupService.create_group(
        name="Book club",
        description="",
        created_by=user_id,
        contract=PRESETS["24h"],
    )

    MessageService.send_message(result.data.id, user_id, "Hello!")
"""
