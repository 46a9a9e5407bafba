"""
Celery tasks for chat app.

This module defines periodic tasks for:
- Deleting groups whose expiry contract has run out
- Destroying read messages past their self-destruct deadline
- Posting "group expires soon" notices

Schedules live in settings.CELERY_BEAT_SCHEDULE and are run by the
django_celery_beat scheduler.

Related files:
    - services.py: GroupService, MessageService, SweeperService

Usage:
    from chat.tasks import run_sweeper

    run_sweeper.delay()
"""

import logging
from dataclasses import asdict
from datetime import timedelta

from celery import shared_task
from django.db import DatabaseError

from .constants import ERROR_CODES, EXPIRY_CONFIG

logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    """Raised inside a task so Celery retries it with backoff."""


def _unwrap(result, task_name: str):
    if result.success:
        return result.data
    if result.error_code == ERROR_CODES.STORE_UNAVAILABLE:
        raise StoreUnavailable(f"{task_name}: {result.error}")
    logger.error(f"{task_name} failed: {result.error} ({result.error_code})")
    return None


@shared_task(
    bind=True,
    autoretry_for=(StoreUnavailable, DatabaseError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def cleanup_expired_groups(self) -> int:
    """
    Delete every active group whose contract has expired.

    Best effort: a group that fails to delete is logged and picked up again
    on the next run.

    Returns:
        Number of groups deleted
    """
    from .services import GroupService

    deleted = _unwrap(GroupService.cleanup_expired_groups(), "cleanup_expired_groups")
    return deleted or 0


@shared_task(
    bind=True,
    autoretry_for=(StoreUnavailable, DatabaseError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def destroy_read_messages(self) -> int:
    """
    Delete read messages whose self-destruct deadline has passed.

    Returns:
        Number of messages destroyed
    """
    from .services import SweeperService

    summary = SweeperService.destroy_due_messages()
    if summary.failures:
        logger.warning(f"destroy_read_messages: {summary.failures} failures")
    return summary.messages_destroyed


@shared_task(
    bind=True,
    autoretry_for=(StoreUnavailable, DatabaseError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def warn_expiring_groups(self, window_seconds: int = EXPIRY_CONFIG.WARNING_WINDOW_SECONDS) -> int:
    """
    Post a one-time warning to groups within window_seconds of their deadline.

    Returns:
        Number of warnings posted
    """
    from .services import GroupService

    result = GroupService.warn_expiring_groups(window=timedelta(seconds=window_seconds))
    return _unwrap(result, "warn_expiring_groups") or 0


@shared_task
def run_sweeper() -> dict:
    """
    Run both sweeps (expired groups, then due messages) in one go.

    Returns:
        Summary counts as a dict
    """
    from .services import SweeperService

    return asdict(SweeperService.run())
