"""
Infrastructure endpoints outside the API namespace.
"""

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import DatabaseError, connection
from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """
    Report whether the store and the channel layer are reachable.

    Responds 200 while the database answers and 503 once it does not. The
    channel layer only carries live updates, so losing it shows up in the
    body as "disconnected" without failing the check.
    """
    body = {"status": "healthy", "database": "connected", "channel_layer": "connected"}

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except DatabaseError:
        logger.warning("Health check: database unreachable", exc_info=True)
        body["database"] = "disconnected"
        body["status"] = "unhealthy"

    try:
        async_to_sync(get_channel_layer().group_send)("health", {"type": "health.ping"})
    except Exception:
        logger.warning("Health check: channel layer unreachable", exc_info=True)
        body["channel_layer"] = "disconnected"

    return JsonResponse(body, status=200 if body["database"] == "connected" else 503)
