"""
Live snapshot streams over the Channels layer.

Each observe_* function is an async generator. On start it creates a
private channel, adds it to the relevant channel-layer group(s) and yields
the current snapshot straight away. After that it waits for change events
published by chat.broadcast and yields a fresh snapshot for each one.

Closing the generator (``aclose()``) or cancelling the task iterating it
removes the channel from its groups, so an abandoned stream never keeps
receiving events.

Usage:
    async for snapshot in observe_group_messages(group_id):
        await websocket.send_json(snapshot)

Snapshots are JSON-ready:
    observe_group           -> group dict, or None if the group is gone
    observe_user_groups     -> list of group dicts
    observe_group_messages  -> list of message dicts, oldest first
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from typing import Any

from channels.db import database_sync_to_async
from channels.layers import get_channel_layer

from .broadcast import group_channel, group_messages_channel, user_groups_channel
from .constants import MESSAGE_CONFIG
from .serializers import GroupSerializer, MessageSerializer
from .stores import GroupStore, MessageStore

logger = logging.getLogger(__name__)


def _group_snapshot(group_id) -> dict | None:
    group = GroupStore.get(group_id)
    if group is None:
        return None
    return dict(GroupSerializer(group).data)


def _user_groups_snapshot(user_id: str) -> list[dict]:
    return [dict(item) for item in GroupSerializer(GroupStore.list_for_member(user_id), many=True).data]


def _messages_snapshot(group_id, limit: int) -> list[dict]:
    messages = MessageStore.page(group_id, limit)
    return [dict(item) for item in MessageSerializer(messages, many=True).data]


async def _observe(channel_groups: list[str], load: Callable[[], Any]) -> AsyncIterator[Any]:
    channel_layer = get_channel_layer()
    channel_name = await channel_layer.new_channel()
    for name in channel_groups:
        await channel_layer.group_add(name, channel_name)

    logger.debug(f"Subscription {channel_name} opened on {channel_groups}")
    try:
        snapshot = await database_sync_to_async(load)()
        yield snapshot
        while True:
            await channel_layer.receive(channel_name)
            yield await database_sync_to_async(load)()
    finally:
        for name in channel_groups:
            await channel_layer.group_discard(name, channel_name)
        logger.debug(f"Subscription {channel_name} closed")


def observe_group(group_id) -> AsyncIterator[dict | None]:
    """Stream of a group's state, refreshed on every group or membership change."""
    return _observe([group_channel(group_id)], lambda: _group_snapshot(group_id))


def observe_user_groups(user_id: str) -> AsyncIterator[list[dict]]:
    """Stream of the active groups a user belongs to."""
    return _observe([user_groups_channel(user_id)], lambda: _user_groups_snapshot(user_id))


def observe_group_messages(
    group_id, limit: int = MESSAGE_CONFIG.DEFAULT_PAGE_SIZE
) -> AsyncIterator[list[dict]]:
    """Stream of a group's most recent messages, oldest first."""
    return _observe(
        [group_messages_channel(group_id)], lambda: _messages_snapshot(group_id, limit)
    )
