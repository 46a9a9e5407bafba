"""
Tests for live snapshot streams.

Change events travel through an in-memory channel layer and are only
published on commit, so these tests use transactional database access.
"""

import asyncio
from uuid import uuid4

import pytest
from channels.db import database_sync_to_async
from channels.layers import channel_layers, get_channel_layer

from chat.broadcast import group_channel, group_messages_channel, user_groups_channel
from chat.services import GroupService, MessageService
from chat.subscriptions import observe_group, observe_group_messages, observe_user_groups
from chat.tests.factories import GroupFactory

pytestmark = [pytest.mark.asyncio, pytest.mark.django_db(transaction=True)]

TIMEOUT = 2


@pytest.fixture(autouse=True)
def fresh_channel_layer():
    """Each test gets its own in-memory layer bound to its own event loop."""
    channel_layers.backends.clear()
    yield
    channel_layers.backends.clear()


async def next_snapshot(stream):
    return await asyncio.wait_for(anext(stream), timeout=TIMEOUT)


async def make_group(**kwargs):
    kwargs.setdefault("created_by", "alice")
    return await database_sync_to_async(GroupFactory)(**kwargs)


class TestObserveGroup:
    async def test_yields_current_state_immediately(self):
        group = await make_group(name="Weekend trip")
        stream = observe_group(group.id)
        try:
            snapshot = await next_snapshot(stream)
        finally:
            await stream.aclose()

        assert snapshot["name"] == "Weekend trip"
        assert snapshot["members"] == ["alice"]
        assert snapshot["is_active"] is True

    async def test_yields_again_after_membership_change(self):
        group = await make_group()
        stream = observe_group(group.id)
        try:
            await next_snapshot(stream)
            await database_sync_to_async(GroupService.join_group_by_code)("bob", group.join_code)
            snapshot = await next_snapshot(stream)
        finally:
            await stream.aclose()

        assert snapshot["members"] == ["alice", "bob"]

    async def test_reports_deactivation(self):
        group = await make_group()
        stream = observe_group(group.id)
        try:
            await next_snapshot(stream)
            await database_sync_to_async(GroupService.delete_group)(group.id)
            snapshot = await next_snapshot(stream)
        finally:
            await stream.aclose()

        assert snapshot["is_active"] is False

    async def test_missing_group_is_none(self):
        stream = observe_group(uuid4())
        try:
            assert await next_snapshot(stream) is None
        finally:
            await stream.aclose()

    async def test_closing_leaves_channel_group(self):
        group = await make_group()
        stream = observe_group(group.id)
        await next_snapshot(stream)

        layer = get_channel_layer()
        assert layer.groups.get(group_channel(group.id))

        await stream.aclose()

        assert not layer.groups.get(group_channel(group.id))


class TestObserveGroupMessages:
    async def test_new_message_appears_in_next_snapshot(self):
        group = await make_group(members=["bob"])
        stream = observe_group_messages(group.id)
        try:
            assert await next_snapshot(stream) == []
            await database_sync_to_async(MessageService.send_message)(group.id, "bob", "Hello!")
            snapshot = await next_snapshot(stream)
        finally:
            await stream.aclose()

        assert [m["content"] for m in snapshot] == ["Hello!"]
        assert snapshot[0]["sender_id"] == "bob"

    async def test_cancelling_consumer_task_unsubscribes(self):
        group = await make_group()
        stream = observe_group_messages(group.id)
        await next_snapshot(stream)

        async def drain():
            async for _ in stream:
                pass

        task = asyncio.create_task(drain())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await stream.aclose()

        assert not get_channel_layer().groups.get(group_messages_channel(group.id))


class TestObserveUserGroups:
    async def test_joined_group_appears_and_deleted_group_disappears(self):
        group = await make_group(name="Book club")
        stream = observe_user_groups("bob")
        try:
            assert await next_snapshot(stream) == []

            await database_sync_to_async(GroupService.join_group_by_code)("bob", group.join_code)
            joined = await next_snapshot(stream)
            assert [g["name"] for g in joined] == ["Book club"]

            await database_sync_to_async(GroupService.delete_group)(group.id)
            assert await next_snapshot(stream) == []
        finally:
            await stream.aclose()

        assert not get_channel_layer().groups.get(user_groups_channel("bob"))
