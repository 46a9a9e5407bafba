"""
Tests for chat API views.

This module tests the chat view endpoints:
- GroupViewSet: Lifecycle, join, membership, admins, group messages
- MessageViewSet: Read, edit, delete, read receipts, reports

Test Organization:
    - Each ViewSet has its own test class group
    - Each test validates ONE specific HTTP interaction
    - Tests follow pattern: test_<method>_<scenario>_<expected_outcome>

Testing Philosophy:
    Tests focus on observable HTTP behavior:
    - Response status codes
    - Response body structure
    - Database state changes
    - Authentication/permission enforcement
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.db import DatabaseError
from freezegun import freeze_time
from rest_framework import status

from chat.contracts import MessageLimit
from chat.models import Group, GroupMembership, Message, MessageReport
from chat.services import MessageService
from chat.stores import MessageStore
from chat.tests.factories import GroupFactory, MembershipFactory, MessageFactory, SystemMessageFactory

# =============================================================================
# URL Constants
# =============================================================================


GROUPS_URL = "/api/v1/chat/groups/"
MESSAGES_URL = "/api/v1/chat/messages/"
JOIN_URL = f"{GROUPS_URL}join/"
LATEST_URL = f"{GROUPS_URL}latest-messages/"


def group_url(group_id, suffix=""):
    """Generate URL for a group endpoint."""
    return f"{GROUPS_URL}{group_id}/{suffix}"


def message_url(message_id, suffix=""):
    """Generate URL for a message endpoint."""
    return f"{MESSAGES_URL}{message_id}/{suffix}"


# =============================================================================
# Authentication
# =============================================================================


class TestAuthentication:
    def test_list_unauthenticated_returns_401(self, db, api_client):
        response = api_client.get(GROUPS_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_bad_token_returns_401(self, db, api_client):
        api_client.credentials(HTTP_AUTHORIZATION="Bearer not-a-token")

        response = api_client.get(GROUPS_URL)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# GroupViewSet: lifecycle
# =============================================================================


class TestGroupCreate:
    def test_create_with_preset_returns_201(self, db, alice_client):
        response = alice_client.post(
            GROUPS_URL,
            {"name": "Weekend trip", "expiry_contract": "24h", "max_members": 10},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        body = response.data
        assert body["name"] == "Weekend trip"
        assert body["created_by"] == "alice"
        assert body["members"] == ["alice"]
        assert body["admin_ids"] == ["alice"]
        assert body["expiry_contract"] == {"type": "timed", "durationMillis": 86_400_000}
        assert body["expires_at"] is not None
        assert len(body["join_code"]) == 6

    def test_create_with_contract_mapping(self, db, alice_client):
        response = alice_client.post(
            GROUPS_URL,
            {"name": "Quick poll", "expiry_contract": {"type": "messageLimit", "maxMessages": 5}},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["contract_description"] == "Expires after 5 messages"
        assert response.data["expires_at"] is None
        assert response.data["max_members"] == 50

    def test_create_unknown_preset_returns_400(self, db, alice_client):
        response = alice_client.post(
            GROUPS_URL, {"name": "Weekend trip", "expiry_contract": "forever"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_create_short_name_returns_400(self, db, alice_client):
        response = alice_client.post(GROUPS_URL, {"name": "ab", "expiry_contract": "1h"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert Group.objects.count() == 0

    def test_create_zero_duration_returns_400(self, db, alice_client):
        response = alice_client.post(
            GROUPS_URL,
            {"name": "Weekend trip", "expiry_contract": {"type": "timed", "durationMillis": 0}},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestGroupListRetrieve:
    def test_list_returns_only_my_active_groups(self, db, group, bob_client):
        GroupFactory(created_by="carol")
        GroupFactory(created_by="bob", is_active=False)

        response = bob_client.get(GROUPS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert [g["id"] for g in response.data] == [str(group.id)]

    def test_retrieve_as_member(self, db, group, bob_client):
        response = bob_client.get(group_url(group.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["members"] == ["alice", "bob"]

    def test_retrieve_as_outsider_returns_403(self, db, group, mallory_client):
        response = mallory_client.get(group_url(group.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "FORBIDDEN"

    def test_retrieve_missing_returns_404(self, db, alice_client):
        response = alice_client.get(group_url("00000000-0000-0000-0000-000000000000"))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_retrieve_non_uuid_returns_404(self, db, alice_client):
        response = alice_client.get(group_url("not-a-group"))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    @pytest.mark.parametrize("group_id", ["a" * 36, "0" * 32, "00000000-0000-0000-0000-00000000000g"])
    def test_retrieve_malformed_uuid_returns_404(self, db, alice_client, group_id):
        response = alice_client.get(group_url(group_id))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_retrieve_malformed_message_id_returns_404(self, db, alice_client):
        response = alice_client.get(message_url("f" * 36))

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestGroupUpdate:
    def test_admin_renames(self, db, group, alice_client):
        response = alice_client.patch(group_url(group.id), {"name": "Road trip"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["name"] == "Road trip"

    def test_member_cannot_rename(self, db, group, bob_client):
        response = bob_client.patch(group_url(group.id), {"name": "Road trip"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_immutable_field_returns_400(self, db, group, alice_client):
        response = alice_client.patch(group_url(group.id), {"join_code": "AAAAAA"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert Group.objects.get(id=group.id).join_code == group.join_code


class TestGroupDelete:
    def test_admin_deletes_group(self, db, group, alice_client):
        MessageFactory.create_batch(3, group=group)

        response = alice_client.delete(group_url(group.id))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert Group.objects.get(id=group.id).is_active is False
        assert not Message.objects.filter(group=group).exists()

    def test_member_cannot_delete(self, db, group, bob_client):
        response = bob_client.delete(group_url(group.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert Group.objects.get(id=group.id).is_active is True

    def test_purge_failure_returns_503(self, db, group, alice_client):
        with patch.object(MessageStore, "purge_group", side_effect=DatabaseError("disk full")):
            response = alice_client.delete(group_url(group.id))

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE
        assert response.data["error_code"] == "CASCADE_FAILURE"
        assert Group.objects.get(id=group.id).is_active is True


# =============================================================================
# GroupViewSet: membership
# =============================================================================


class TestGroupJoin:
    def test_join_by_code(self, db, group, mallory_client):
        response = mallory_client.post(JOIN_URL, {"join_code": group.join_code.lower()}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert "mallory" in response.data["members"]

    def test_join_unknown_code_returns_404(self, db, mallory_client):
        response = mallory_client.post(JOIN_URL, {"join_code": "ZZZZZZ"}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_join_full_group_returns_409(self, db, mallory_client):
        group = GroupFactory(max_members=2, members=["bob"])

        response = mallory_client.post(JOIN_URL, {"join_code": group.join_code}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "GROUP_FULL"

    def test_join_malformed_code_returns_400(self, db, mallory_client):
        response = mallory_client.post(JOIN_URL, {"join_code": "abc"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestGroupLeave:
    def test_member_leaves(self, db, group, bob_client):
        response = bob_client.post(group_url(group.id, "leave/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["members"] == ["alice"]

    def test_creator_leaving_deletes_group(self, db, group, alice_client):
        response = alice_client.post(group_url(group.id, "leave/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["is_active"] is False


class TestGroupMembers:
    def test_admin_adds_member(self, db, group, alice_client):
        response = alice_client.post(group_url(group.id, "members/"), {"user_id": "carol"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["members"] == ["alice", "bob", "carol"]

    def test_member_cannot_add(self, db, group, bob_client):
        response = bob_client.post(group_url(group.id, "members/"), {"user_id": "carol"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_add_to_inactive_group_returns_410(self, db, alice_client):
        group = GroupFactory(created_by="alice", is_active=False)

        response = alice_client.post(group_url(group.id, "members/"), {"user_id": "carol"}, format="json")

        assert response.status_code == status.HTTP_410_GONE

    def test_admin_removes_member(self, db, group, alice_client):
        response = alice_client.delete(group_url(group.id, "members/bob/"))

        assert response.status_code == status.HTTP_200_OK
        assert not GroupMembership.objects.filter(group=group, user_id="bob").exists()

    def test_member_cannot_remove_creator(self, db, group, bob_client):
        response = bob_client.delete(group_url(group.id, "members/alice/"))

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestGroupAdmins:
    def test_admin_promotes_member(self, db, group, alice_client):
        response = alice_client.post(group_url(group.id, "admins/"), {"user_id": "bob"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["admin_ids"] == ["alice", "bob"]

    def test_promoting_non_member_returns_404(self, db, group, alice_client):
        response = alice_client.post(group_url(group.id, "admins/"), {"user_id": "carol"}, format="json")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_admin_revokes_admin(self, db, group, alice_client):
        GroupMembership.objects.filter(group=group, user_id="bob").update(is_admin=True)

        response = alice_client.delete(group_url(group.id, "admins/bob/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["admin_ids"] == ["alice"]

    def test_revoking_creator_returns_403(self, db, group, bob_client):
        GroupMembership.objects.filter(group=group, user_id="bob").update(is_admin=True)

        response = bob_client.delete(group_url(group.id, "admins/alice/"))

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestJoinCode:
    def test_admin_regenerates(self, db, group, alice_client):
        response = alice_client.post(group_url(group.id, "join-code/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["join_code"] == Group.objects.get(id=group.id).join_code
        assert response.data["join_code"] != group.join_code

    def test_member_cannot_regenerate(self, db, group, bob_client):
        response = bob_client.post(group_url(group.id, "join-code/"))

        assert response.status_code == status.HTTP_403_FORBIDDEN


# =============================================================================
# GroupViewSet: messages
# =============================================================================


class TestGroupMessages:
    def test_send_message_returns_201(self, db, group, bob_client):
        response = bob_client.post(
            group_url(group.id, "messages/"),
            {"content": "Hello!", "self_destruct_duration": 5000},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["content"] == "Hello!"
        assert response.data["sender_id"] == "bob"
        assert response.data["self_destruct_duration"] == 5000
        assert response.data["destruct_at"] is None
        assert Group.objects.get(id=group.id).message_count == 1

    def test_outsider_cannot_send(self, db, group, mallory_client):
        response = mallory_client.post(group_url(group.id, "messages/"), {"content": "hi"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_blank_message_returns_400(self, db, group, bob_client):
        response = bob_client.post(group_url(group.id, "messages/"), {"content": "   "}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_limit_reached_deletes_group(self, db, alice_client):
        group = GroupFactory(
            created_by="alice", expiry_contract=MessageLimit(max_messages=1).to_storage()
        )

        first = alice_client.post(group_url(group.id, "messages/"), {"content": "last"}, format="json")
        second = alice_client.post(group_url(group.id, "messages/"), {"content": "too late"}, format="json")

        assert first.status_code == status.HTTP_201_CREATED
        assert second.status_code == status.HTTP_410_GONE
        assert Group.objects.get(id=group.id).is_active is False

    def test_list_messages(self, db, group, bob_client):
        with freeze_time(group.created_at) as frozen:
            for content in ("one", "two", "three"):
                frozen.tick(timedelta(seconds=1))
                MessageService.send_message(group.id, "alice", content)

        response = bob_client.get(group_url(group.id, "messages/"), {"limit": 2})

        assert response.status_code == status.HTTP_200_OK
        assert [m["content"] for m in response.data] == ["two", "three"]

    def test_list_messages_malformed_cursor_returns_404(self, db, group, bob_client):
        response = bob_client.get(group_url(group.id, "messages/"), {"before": "a" * 36})

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_list_messages_bad_limit_returns_400(self, db, group, bob_client):
        response = bob_client.get(group_url(group.id, "messages/"), {"limit": "lots"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_list_messages_as_outsider_returns_403(self, db, group, mallory_client):
        response = mallory_client.get(group_url(group.id, "messages/"))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_search(self, db, group, bob_client):
        MessageFactory(group=group, content="Pizza tonight?")
        MessageFactory(group=group, content="Sounds good")

        response = bob_client.get(group_url(group.id, "messages/search/"), {"q": "PIZZA"})

        assert response.status_code == status.HTTP_200_OK
        assert [m["content"] for m in response.data] == ["Pizza tonight?"]

    def test_unread_count(self, db, group, bob_client):
        MessageFactory.create_batch(2, group=group, sender_id="alice")

        response = bob_client.get(group_url(group.id, "messages/unread-count/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"unread_count": 2}

    def test_latest_messages(self, db, group, bob_client):
        message = MessageFactory(group=group, content="latest")

        response = bob_client.get(LATEST_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.data[str(group.id)]["id"] == str(message.id)


# =============================================================================
# MessageViewSet
# =============================================================================


class TestMessageDetail:
    def test_retrieve_as_member(self, db, group, bob_client):
        message = MessageFactory(group=group, content="hello")

        response = bob_client.get(message_url(message.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["content"] == "hello"
        assert response.data["group_id"] == str(group.id)

    def test_retrieve_as_outsider_returns_403(self, db, group, mallory_client):
        message = MessageFactory(group=group)

        response = mallory_client.get(message_url(message.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_sender_edits(self, db, group, bob_client):
        message = MessageFactory(group=group, sender_id="bob")

        response = bob_client.patch(message_url(message.id), {"content": "edited"}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["content"] == "edited"
        assert response.data["is_edited"] is True

    def test_other_member_cannot_edit(self, db, group, alice_client):
        message = MessageFactory(group=group, sender_id="bob")

        response = alice_client.patch(message_url(message.id), {"content": "edited"}, format="json")

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_sender_deletes(self, db, group, bob_client):
        message = MessageFactory(group=group, sender_id="bob")

        response = bob_client.delete(message_url(message.id))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Message.objects.filter(id=message.id).exists()

    def test_admin_deletes_system_message(self, db, group, alice_client):
        notice = SystemMessageFactory(group=group)

        response = alice_client.delete(message_url(notice.id))

        assert response.status_code == status.HTTP_204_NO_CONTENT

    def test_member_cannot_delete_system_message(self, db, group, bob_client):
        notice = SystemMessageFactory(group=group)

        response = bob_client.delete(message_url(notice.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_delete_missing_returns_404(self, db, bob_client):
        response = bob_client.delete(message_url("00000000-0000-0000-0000-000000000000"))

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestMessageActions:
    def test_mark_read_starts_timer(self, db, group, bob_client):
        message = MessageFactory(group=group, sender_id="alice", self_destruct_duration=1000)

        response = bob_client.post(message_url(message.id, "read/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["read_by"] == ["bob"]
        assert response.data["is_read"] is True
        assert response.data["destruct_at"] is not None

    def test_outsider_cannot_mark_read(self, db, group, mallory_client):
        message = MessageFactory(group=group)

        response = mallory_client.post(message_url(message.id, "read/"))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_report(self, db, group, bob_client):
        message = MessageFactory(group=group, sender_id="alice")

        response = bob_client.post(message_url(message.id, "report/"), {"reason": "spam"}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["reported_by"] == "bob"
        assert MessageReport.objects.filter(message_id=message.id).count() == 1

    def test_report_blank_reason_returns_400(self, db, group, bob_client):
        message = MessageFactory(group=group)

        response = bob_client.post(message_url(message.id, "report/"), {"reason": ""}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_report_from_new_member(self, db, group, alice_client):
        MembershipFactory(group=group, user_id="carol")
        message = MessageFactory(group=group, sender_id="carol")

        response = alice_client.post(message_url(message.id, "report/"), {"reason": "rude"}, format="json")

        assert response.status_code == status.HTTP_201_CREATED
