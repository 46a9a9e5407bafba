"""
Tests for the health check endpoint.
"""

from unittest.mock import patch

from django.db import OperationalError
from django.test import Client

HEALTH_URL = "/health/"


def test_healthy(db):
    response = Client().get(HEALTH_URL)

    assert response.status_code == 200
    assert response.json() == {
        "status": "healthy",
        "database": "connected",
        "channel_layer": "connected",
    }


def test_database_down_is_unhealthy(db):
    with patch("core.views.connection") as connection:
        connection.cursor.side_effect = OperationalError("connection refused")

        response = Client().get(HEALTH_URL)

    assert response.status_code == 503
    assert response.json()["database"] == "disconnected"


def test_channel_layer_down_only_degrades(db):
    with patch("core.views.get_channel_layer", side_effect=ConnectionError("redis down")):
        response = Client().get(HEALTH_URL)

    assert response.status_code == 200
    assert response.json()["channel_layer"] == "disconnected"
