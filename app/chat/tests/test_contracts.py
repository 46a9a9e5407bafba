"""
Tests for expiry contracts.

Contracts are pure value objects, so these tests use a small stand-in for
the group instead of the database.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import pytest

from chat.contracts import (
    PRESETS,
    Inactivity,
    MessageLimit,
    PollBased,
    Timed,
    format_duration,
    from_storage,
    validate_for_creation,
)
from core.exceptions import ValidationError

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
ONE_MS = timedelta(milliseconds=1)


@dataclass
class FakeGroup:
    created_at: datetime = T0
    last_active_at: datetime = T0
    message_count: int = 0


class TestTimed:
    def test_not_expired_one_millisecond_before_deadline(self):
        contract = Timed(duration_millis=60_000)

        assert contract.has_expired(FakeGroup(), T0 + timedelta(minutes=1) - ONE_MS) is False

    def test_expired_exactly_at_deadline(self):
        contract = Timed(duration_millis=60_000)

        assert contract.has_expired(FakeGroup(), T0 + timedelta(minutes=1)) is True

    def test_activity_does_not_extend_deadline(self):
        contract = Timed(duration_millis=60_000)
        group = FakeGroup(last_active_at=T0 + timedelta(seconds=59))

        assert contract.has_expired(group, T0 + timedelta(minutes=1)) is True

    def test_expires_at_is_created_at_plus_duration(self):
        assert Timed(duration_millis=1500).expires_at(T0, T0 + timedelta(hours=1)) == T0 + timedelta(
            milliseconds=1500
        )


class TestMessageLimit:
    def test_one_below_limit_is_alive(self):
        assert MessageLimit(max_messages=3).has_expired(FakeGroup(message_count=2), T0) is False

    def test_at_limit_is_expired(self):
        assert MessageLimit(max_messages=3).has_expired(FakeGroup(message_count=3), T0) is True

    def test_has_no_wall_clock_deadline(self):
        assert MessageLimit(max_messages=3).expires_at(T0, T0) is None


class TestInactivity:
    def test_alive_right_after_activity(self):
        contract = Inactivity(timeout_millis=10_000)
        group = FakeGroup(last_active_at=T0 + timedelta(hours=5))

        assert contract.has_expired(group, T0 + timedelta(hours=5)) is False

    def test_expired_once_timeout_elapses_without_activity(self):
        contract = Inactivity(timeout_millis=10_000)
        group = FakeGroup(last_active_at=T0 + timedelta(hours=5))

        assert contract.has_expired(group, T0 + timedelta(hours=5, seconds=10)) is True
        assert contract.has_expired(group, T0 + timedelta(hours=5, seconds=10) - ONE_MS) is False


class TestPollBased:
    def test_never_expires(self):
        group = FakeGroup(message_count=10_000)

        assert PollBased().has_expired(group, T0 + timedelta(days=3650)) is False
        assert PollBased().expires_at(T0, T0) is None


class TestStorage:
    @pytest.mark.parametrize(
        "contract",
        [
            Timed(duration_millis=0),
            Timed(duration_millis=604_800_000),
            MessageLimit(max_messages=0),
            MessageLimit(max_messages=1),
            Inactivity(timeout_millis=7_200_000),
            PollBased(),
        ],
    )
    def test_round_trip_reproduces_equal_contract(self, contract):
        assert from_storage(contract.to_storage()) == contract

    def test_storage_uses_type_discriminant(self):
        assert Timed(duration_millis=5).to_storage() == {"type": "timed", "durationMillis": 5}
        assert MessageLimit(max_messages=5).to_storage() == {"type": "messageLimit", "maxMessages": 5}
        assert Inactivity(timeout_millis=5).to_storage() == {"type": "inactivity", "timeoutMillis": 5}
        assert PollBased().to_storage() == {"type": "pollBased"}

    def test_unknown_type_fails_fast(self):
        with pytest.raises(ValidationError, match="Unknown expiry contract type"):
            from_storage({"type": "lunar"})

    @pytest.mark.parametrize(
        "data",
        [
            None,
            "timed",
            {},
            {"type": "timed"},
            {"type": "timed", "durationMillis": "3600"},
            {"type": "timed", "durationMillis": True},
            {"type": "messageLimit", "maxMessages": -1},
            {"type": "inactivity", "timeoutMillis": 1.5},
        ],
    )
    def test_malformed_data_is_rejected(self, data):
        with pytest.raises(ValidationError):
            from_storage(data)


class TestValidateForCreation:
    @pytest.mark.parametrize(
        "contract",
        [Timed(duration_millis=0), MessageLimit(max_messages=0), Inactivity(timeout_millis=0)],
    )
    def test_zero_contracts_are_dead_on_arrival(self, contract):
        with pytest.raises(ValidationError):
            validate_for_creation(contract)

    def test_presets_are_valid(self):
        for contract in PRESETS.values():
            validate_for_creation(contract)

    def test_poll_based_is_valid(self):
        validate_for_creation(PollBased())


class TestFormatDuration:
    @pytest.mark.parametrize(
        ("delta", "expected"),
        [
            (timedelta(days=1, hours=3), "1d 3h"),
            (timedelta(hours=2, minutes=5), "2h 5m"),
            (timedelta(minutes=4, seconds=9), "4m 9s"),
            (timedelta(seconds=30), "30s"),
            (timedelta(seconds=-5), "0s"),
        ],
    )
    def test_formats(self, delta, expected):
        assert format_duration(delta) == expected

    def test_describe_uses_formatted_duration(self):
        assert PRESETS["2h_inactivity"].describe() == "Expires after 2h 0m of inactivity"
        assert PRESETS["1w"].describe() == "Expires 7d 0h after creation"
