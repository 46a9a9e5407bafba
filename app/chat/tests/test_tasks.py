"""
Tests for chat Celery tasks.

Tasks are called directly (synchronously); the service layer underneath
is exercised against the test database.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.conf import settings
from django.db import OperationalError
from freezegun import freeze_time

from chat.contracts import MessageLimit, Timed
from chat.models import Group, Message, MessageType
from chat.services import GroupService, MessageService
from chat.stores import GroupStore
from chat.tasks import (
    StoreUnavailable,
    _unwrap,
    cleanup_expired_groups,
    destroy_read_messages,
    run_sweeper,
    warn_expiring_groups,
)
from chat.tests.factories import GroupFactory, MessageFactory
from core.services import ServiceResult

NOW = "2026-03-01 12:00:00"


class TestUnwrap:
    def test_returns_data_on_success(self):
        assert _unwrap(ServiceResult.success(3), "task") == 3

    def test_store_outage_raises_for_retry(self):
        result = ServiceResult.failure("down", error_code="STORE_UNAVAILABLE")

        with pytest.raises(StoreUnavailable, match="task: down"):
            _unwrap(result, "task")

    def test_other_failures_logged_and_swallowed(self):
        result = ServiceResult.failure("nope", error_code="NOT_FOUND")

        assert _unwrap(result, "task") is None


class TestCleanupExpiredGroups:
    def test_deletes_expired_groups(self, db):
        with freeze_time(NOW) as frozen:
            expired = GroupFactory(expiry_contract=Timed(duration_millis=60_000).to_storage())
            alive = GroupFactory(expiry_contract=MessageLimit(max_messages=10).to_storage())
            MessageFactory.create_batch(2, group=expired)
            frozen.tick(timedelta(minutes=2))

            assert cleanup_expired_groups() == 1

        assert Group.objects.get(id=expired.id).is_active is False
        assert Group.objects.get(id=alive.id).is_active is True
        assert not Message.objects.filter(group=expired).exists()

    def test_nothing_to_do(self, db):
        GroupFactory()

        assert cleanup_expired_groups() == 0

    def test_store_outage_raises(self, db):
        with patch.object(GroupStore, "list_active", side_effect=OperationalError("no db")):
            with pytest.raises(StoreUnavailable):
                cleanup_expired_groups()


class TestDestroyReadMessages:
    def test_destroys_only_due_messages(self, db, group):
        with freeze_time(NOW) as frozen:
            due = MessageFactory(group=group, sender_id="alice", self_destruct_duration=1000)
            later = MessageFactory(group=group, sender_id="alice", self_destruct_duration=60_000)
            MessageService.mark_read(due.id, "bob")
            MessageService.mark_read(later.id, "bob")
            frozen.tick(timedelta(seconds=5))

            assert destroy_read_messages() == 1

        assert not Message.objects.filter(id=due.id).exists()
        assert Message.objects.filter(id=later.id).exists()


class TestWarnExpiringGroups:
    def test_window_is_configurable(self, db):
        with freeze_time(NOW) as frozen:
            group = GroupFactory(expiry_contract=Timed(duration_millis=3 * 3_600_000).to_storage())
            frozen.tick(timedelta(hours=1))

            assert warn_expiring_groups() == 0
            assert warn_expiring_groups(window_seconds=3 * 3600) == 1

        assert Message.objects.filter(group=group, message_type=MessageType.SYSTEM).count() == 1


class TestRunSweeper:
    def test_returns_summary_dict(self, db, group):
        with freeze_time(NOW) as frozen:
            GroupFactory(expiry_contract=Timed(duration_millis=1000).to_storage())
            message = MessageFactory(group=group, sender_id="alice", self_destruct_duration=10)
            MessageService.mark_read(message.id, "bob")
            frozen.tick(timedelta(seconds=2))

            summary = run_sweeper()

        assert summary == {"expired_groups_deleted": 1, "messages_destroyed": 1, "failures": 0}

    def test_reports_group_scan_failure(self, db):
        with patch.object(GroupService, "get_expired_groups") as get_expired:
            get_expired.return_value = ServiceResult.failure("down", error_code="STORE_UNAVAILABLE")

            summary = run_sweeper()

        assert summary["failures"] == 1
        assert summary["expired_groups_deleted"] == 0


class TestBeatSchedule:
    @pytest.mark.parametrize(
        "task",
        [cleanup_expired_groups, destroy_read_messages, warn_expiring_groups],
    )
    def test_periodic_tasks_are_scheduled(self, task):
        scheduled = {entry["task"] for entry in settings.CELERY_BEAT_SCHEDULE.values()}

        assert task.name in scheduled
