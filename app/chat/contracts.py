"""
Expiry contracts deciding when a group dies.

A group carries exactly one contract, fixed at creation:

    Timed(duration_millis)       dead at created_at + duration
    MessageLimit(max_messages)   dead once message_count >= max_messages
    Inactivity(timeout_millis)   dead at last_active_at + timeout
    PollBased()                  never dead from this engine's point of view;
                                 members vote it down elsewhere

Contracts are immutable value objects. They are persisted in the group's
``expiry_contract`` JSON column as a ``{"type": ..., ...}`` mapping and
decoded with ``from_storage``, which fails fast on anything it does not
recognise.

Usage:
    from chat.contracts import Timed, from_storage

    contract = Timed(duration_millis=3_600_000)
    group.expiry_contract = contract.to_storage()
    ...
    from_storage(group.expiry_contract).has_expired(group, now)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, ClassVar, Union

from core.exceptions import ValidationError

if TYPE_CHECKING:
    from typing import Any, Protocol

    class ExpirySubject(Protocol):
        created_at: datetime
        last_active_at: datetime
        message_count: int


TIMED = "timed"
MESSAGE_LIMIT = "messageLimit"
INACTIVITY = "inactivity"
POLL_BASED = "pollBased"


@dataclass(frozen=True)
class Timed:
    """Expires a fixed duration after the group was created."""

    duration_millis: int

    type_name: ClassVar[str] = TIMED

    @property
    def duration(self) -> timedelta:
        return timedelta(milliseconds=self.duration_millis)

    def expires_at(self, created_at: datetime, last_active_at: datetime) -> datetime:
        return created_at + self.duration

    def has_expired(self, group: ExpirySubject, now: datetime) -> bool:
        return now >= self.expires_at(group.created_at, group.last_active_at)

    def to_storage(self) -> dict[str, Any]:
        return {"type": TIMED, "durationMillis": self.duration_millis}

    def describe(self) -> str:
        return f"Expires {format_duration(self.duration)} after creation"


@dataclass(frozen=True)
class MessageLimit:
    """Expires once the group has accepted max_messages messages."""

    max_messages: int

    type_name: ClassVar[str] = MESSAGE_LIMIT

    def expires_at(self, created_at: datetime, last_active_at: datetime) -> None:
        return None

    def has_expired(self, group: ExpirySubject, now: datetime) -> bool:
        return group.message_count >= self.max_messages

    def to_storage(self) -> dict[str, Any]:
        return {"type": MESSAGE_LIMIT, "maxMessages": self.max_messages}

    def describe(self) -> str:
        return f"Expires after {self.max_messages} messages"


@dataclass(frozen=True)
class Inactivity:
    """Expires when nobody has been active for timeout_millis."""

    timeout_millis: int

    type_name: ClassVar[str] = INACTIVITY

    @property
    def timeout(self) -> timedelta:
        return timedelta(milliseconds=self.timeout_millis)

    def expires_at(self, created_at: datetime, last_active_at: datetime) -> datetime:
        return last_active_at + self.timeout

    def has_expired(self, group: ExpirySubject, now: datetime) -> bool:
        return now >= self.expires_at(group.created_at, group.last_active_at)

    def to_storage(self) -> dict[str, Any]:
        return {"type": INACTIVITY, "timeoutMillis": self.timeout_millis}

    def describe(self) -> str:
        return f"Expires after {format_duration(self.timeout)} of inactivity"


@dataclass(frozen=True)
class PollBased:
    """Expiry decided by a member vote outside this engine."""

    type_name: ClassVar[str] = POLL_BASED

    def expires_at(self, created_at: datetime, last_active_at: datetime) -> None:
        return None

    def has_expired(self, group: ExpirySubject, now: datetime) -> bool:
        return False

    def to_storage(self) -> dict[str, Any]:
        return {"type": POLL_BASED}

    def describe(self) -> str:
        return "Expires when members vote to end it"


ExpiryContract = Union[Timed, MessageLimit, Inactivity, PollBased]


# Presets offered to clients when creating a group
PRESETS: dict[str, ExpiryContract] = {
    "1h": Timed(duration_millis=60 * 60 * 1000),
    "6h": Timed(duration_millis=6 * 60 * 60 * 1000),
    "24h": Timed(duration_millis=24 * 60 * 60 * 1000),
    "1w": Timed(duration_millis=7 * 24 * 60 * 60 * 1000),
    "50_messages": MessageLimit(max_messages=50),
    "100_messages": MessageLimit(max_messages=100),
    "2h_inactivity": Inactivity(timeout_millis=2 * 60 * 60 * 1000),
}


def _read_count(data: dict, key: str) -> int:
    if key not in data:
        raise ValidationError(f"Expiry contract '{data['type']}' is missing '{key}'")
    value = data[key]
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Expiry contract field '{key}' must be an integer")
    if value < 0:
        raise ValidationError(f"Expiry contract field '{key}' must not be negative")
    return value


def from_storage(data: Any) -> ExpiryContract:
    """
    Decode a stored contract mapping.

    Raises:
        ValidationError: unknown type, missing field, or a field that is not
            a non-negative integer
    """
    if not isinstance(data, dict) or not isinstance(data.get("type"), str):
        raise ValidationError("Expiry contract must be a mapping with a 'type'")

    contract_type = data["type"]
    if contract_type == TIMED:
        return Timed(duration_millis=_read_count(data, "durationMillis"))
    if contract_type == MESSAGE_LIMIT:
        return MessageLimit(max_messages=_read_count(data, "maxMessages"))
    if contract_type == INACTIVITY:
        return Inactivity(timeout_millis=_read_count(data, "timeoutMillis"))
    if contract_type == POLL_BASED:
        return PollBased()
    raise ValidationError(f"Unknown expiry contract type: '{contract_type}'")


def validate_for_creation(contract: ExpiryContract) -> None:
    """
    Reject contracts that would make a group dead on arrival.

    Raises:
        ValidationError: zero duration, timeout or message limit
    """
    if isinstance(contract, Timed) and contract.duration_millis <= 0:
        raise ValidationError("Group duration must be greater than zero")
    if isinstance(contract, Inactivity) and contract.timeout_millis <= 0:
        raise ValidationError("Inactivity timeout must be greater than zero")
    if isinstance(contract, MessageLimit) and contract.max_messages <= 0:
        raise ValidationError("Message limit must be greater than zero")


def format_duration(delta: timedelta) -> str:
    """
    Render a duration for system messages.

    Examples:
        timedelta(days=1, hours=3)      -> "1d 3h"
        timedelta(hours=2, minutes=5)   -> "2h 5m"
        timedelta(minutes=4, seconds=9) -> "4m 9s"
        timedelta(seconds=30)           -> "30s"
    """
    total_seconds = max(0, int(delta.total_seconds()))
    days, remainder = divmod(total_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
