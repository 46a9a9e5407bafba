"""
Tests for ServiceResult and BaseService.

These tests verify that:
- ServiceResult carries data or an error code
- Application errors keep their code when converted to results
- Database errors become STORE_UNAVAILABLE without leaking detail
"""

from __future__ import annotations

import logging

import pytest
from django.db import DatabaseError, IntegrityError, OperationalError

from core.exceptions import ConflictError, NotFoundError, ValidationError
from core.services import STORE_UNAVAILABLE, BaseService, ServiceResult


class ExampleService(BaseService):
    pass


# =============================================================================
# ServiceResult
# =============================================================================


class TestServiceResult:
    def test_success_holds_data(self):
        result = ServiceResult.success({"id": 1})

        assert result.success is True
        assert bool(result) is True
        assert result.data == {"id": 1}
        assert result.error is None

    def test_failure_holds_error(self):
        result = ServiceResult.failure("Group is full", "GROUP_FULL")

        assert result.success is False
        assert bool(result) is False
        assert result.data is None
        assert result.error_code == "GROUP_FULL"

    def test_from_application_error_keeps_code(self):
        result = ServiceResult.from_exception(NotFoundError("Group not found"))

        assert result.error == "Group not found"
        assert result.error_code == "NOT_FOUND"

    def test_from_exception_code_override(self):
        result = ServiceResult.from_exception(ConflictError("Group is full"), error_code="GROUP_FULL")

        assert result.error_code == "GROUP_FULL"

    def test_from_validation_error_uses_message_not_str(self):
        exc = ValidationError("Name too short", details={"field": "name"})

        result = ServiceResult.from_exception(exc)

        assert str(exc) == "[VALIDATION_ERROR] Name too short"
        assert result.error == "Name too short"
        assert result.error_code == "VALIDATION_ERROR"

    def test_from_plain_exception_uses_class_name(self):
        result = ServiceResult.from_exception(KeyError("missing"))

        assert result.error_code == "KEYERROR"


# =============================================================================
# BaseService
# =============================================================================


class TestBaseService:
    def test_logger_named_after_service(self):
        assert ExampleService.get_logger().name == f"{__name__}.ExampleService"

    @pytest.mark.parametrize(
        "exc",
        [OperationalError("could not connect to server"), IntegrityError("duplicate key"), DatabaseError("boom")],
    )
    def test_database_errors_become_store_unavailable(self, exc):
        result = ExampleService.handle_exception(exc, "lookup")

        assert result.error_code == STORE_UNAVAILABLE
        assert str(exc) not in result.error

    def test_database_error_is_logged_with_context(self, caplog):
        with caplog.at_level(logging.ERROR):
            ExampleService.handle_exception(OperationalError("timeout"), "join_group_by_code ABC123")

        assert "join_group_by_code ABC123: timeout" in caplog.text

    def test_application_error_keeps_code(self):
        result = ExampleService.handle_exception(NotFoundError("Group not found"))

        assert result.error_code == "NOT_FOUND"

    def test_atomic_rolls_back_on_error(self, db):
        from chat.models import MessageReport

        with pytest.raises(RuntimeError):
            with ExampleService.atomic():
                MessageReport.objects.create(
                    message_id="00000000-0000-0000-0000-000000000001",
                    group_id="00000000-0000-0000-0000-000000000002",
                    reported_by="bob",
                    reason="spam",
                )
                raise RuntimeError("abort")

        assert MessageReport.objects.count() == 0
