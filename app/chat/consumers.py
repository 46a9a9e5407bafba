"""
WebSocket consumers for the chat application.

Each consumer streams snapshots from chat.subscriptions to the client:

Consumers:
    GroupConsumer: Group state (members, admins, counters, is_active)
    GroupMessagesConsumer: Recent messages of a group
    UserGroupsConsumer: The authenticated user's active groups

Authentication:
    Users are authenticated via JWT token passed as query parameter.
    JWTAuthMiddleware stores the token's user id in self.scope["user_id"].

Message Types (to client):
    - snapshot: {"type": "snapshot", "data": ...} on connect and on every change
    - error: Error response

Close Codes:
    4001: Not authenticated
    4003: Not a member of the group
    4004: Group does not exist
"""

from __future__ import annotations

import asyncio
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer

from chat.models import GroupMembership
from chat.stores import GroupStore
from chat.subscriptions import observe_group, observe_group_messages, observe_user_groups

logger = logging.getLogger(__name__)


class SnapshotConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer forwarding a snapshot stream to the WebSocket client.

    Subclasses implement authorize() and open_stream(). The stream runs in a
    background task that is cancelled on disconnect, which closes the
    subscription.

    Attributes:
        user_id: Authenticated user id
        stream_task: Task forwarding snapshots
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id: str | None = None
        self.stream_task: asyncio.Task | None = None

    async def connect(self):
        """
        Handle WebSocket connection.

        Validates the user is authenticated and authorized, accepts the
        connection and starts forwarding snapshots.
        """
        self.user_id = self.scope.get("user_id")

        if not self.user_id:
            logger.warning(f"Rejected unauthenticated connection to {self.scope.get('path')}")
            await self.close(code=4001)
            return

        close_code = await self.authorize()
        if close_code is not None:
            await self.close(code=close_code)
            return

        await self.accept()
        self.stream_task = asyncio.create_task(self._forward(self.open_stream()))
        logger.info(f"User {self.user_id} subscribed to {self.scope.get('path')}")

    async def disconnect(self, close_code):
        """Stop the snapshot stream if one was started."""
        if self.stream_task is not None:
            self.stream_task.cancel()
            try:
                await self.stream_task
            except asyncio.CancelledError:
                pass
            self.stream_task = None
            logger.info(f"User {self.user_id} unsubscribed from {self.scope.get('path')}")

    async def receive_json(self, content):
        """Clients only listen on these sockets."""
        await self.send_json(
            {
                "type": "error",
                "message": "This connection is read-only",
            }
        )

    async def _forward(self, stream):
        try:
            async for snapshot in stream:
                await self.send_json({"type": "snapshot", "data": snapshot})
        finally:
            await stream.aclose()

    async def authorize(self) -> int | None:
        """Return a close code to reject the connection, or None to accept it."""
        return None

    def open_stream(self):
        raise NotImplementedError


class GroupScopedConsumer(SnapshotConsumer):
    """Consumer for a single group, restricted to its members."""

    async def authorize(self) -> int | None:
        self.group_id = self.scope["url_route"]["kwargs"]["group_id"]

        group = await database_sync_to_async(GroupStore.get)(self.group_id)
        if group is None:
            logger.warning(f"User {self.user_id} tried to observe non-existent group {self.group_id}")
            return 4004

        is_member = await database_sync_to_async(
            GroupMembership.objects.filter(group_id=self.group_id, user_id=self.user_id).exists
        )()
        if not is_member:
            logger.warning(f"User {self.user_id} is not a member of group {self.group_id}")
            return 4003
        return None


class GroupConsumer(GroupScopedConsumer):
    def open_stream(self):
        return observe_group(self.group_id)


class GroupMessagesConsumer(GroupScopedConsumer):
    def open_stream(self):
        return observe_group_messages(self.group_id)


class UserGroupsConsumer(SnapshotConsumer):
    def open_stream(self):
        return observe_user_groups(self.user_id)
