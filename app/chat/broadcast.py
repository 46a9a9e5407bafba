"""
Change notifications over the Channels layer.

Services call these publishers after a write. Each publisher registers a
``transaction.on_commit`` hook, so subscribers are only told about changes
that were actually committed. The event carries no data; subscribers
re-read their snapshot from the database (see chat.subscriptions).

Channel-layer groups:
    chat.group.<group hex>           changes to a group row or its members
    chat.group.<group hex>.messages  changes to a group's messages
    chat.user.<digest of user id>    changes to the set of groups a user is in
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)

# Consumers never see this type; subscriptions read it straight off the layer
CHANGE_EVENT = "chat.changed"


def group_channel(group_id) -> str:
    return f"chat.group.{_hex(group_id)}"


def group_messages_channel(group_id) -> str:
    return f"chat.group.{_hex(group_id)}.messages"


def user_groups_channel(user_id: str) -> str:
    # User ids are opaque and may contain characters channel names reject
    digest = hashlib.sha256(str(user_id).encode()).hexdigest()[:40]
    return f"chat.user.{digest}"


def _hex(value) -> str:
    return getattr(value, "hex", None) or str(value).replace("-", "")


def _send(channel_groups: list[str], reason: str) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return

    event = {"type": CHANGE_EVENT, "reason": reason}
    for name in channel_groups:
        try:
            async_to_sync(channel_layer.group_send)(name, event)
        except Exception:
            # The write is committed; a missed notification only delays clients
            logger.exception(f"Failed to publish {reason} to {name}")


def _publish_on_commit(channel_groups: list[str], reason: str) -> None:
    transaction.on_commit(lambda: _send(channel_groups, reason))


def group_changed(group_id, member_ids: Iterable[str] = (), reason: str = "group") -> None:
    """A group row or its membership changed."""
    channels = [group_channel(group_id)]
    channels += [user_groups_channel(user_id) for user_id in member_ids]
    _publish_on_commit(channels, reason)


def messages_changed(group_id, reason: str = "messages") -> None:
    """Messages of a group were added, edited, read or deleted."""
    _publish_on_commit([group_messages_channel(group_id)], reason)
