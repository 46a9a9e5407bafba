"""
Test configuration and fixtures for chat tests.

This module provides:
- A group with a creator (alice) and a plain member (bob)
- API clients authenticated as alice, bob and an outsider

Tokens are minted by chat.tests.auth.

Usage:
    def test_example(group, alice_client):
        response = alice_client.get(f"/api/v1/chat/groups/{group.id}/")
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient

from chat.tests.auth import client_for
from chat.tests.factories import GroupFactory

ALICE = "alice"
BOB = "bob"
MALLORY = "mallory"


# =============================================================================
# Group Fixtures
# =============================================================================


@pytest.fixture
def group(db):
    """Active 24h group created by alice with bob as a member."""
    return GroupFactory(name="Weekend trip", created_by=ALICE, members=[BOB])


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    """Unauthenticated API client."""
    return APIClient()


@pytest.fixture
def alice_client():
    return client_for(ALICE)


@pytest.fixture
def bob_client():
    return client_for(BOB)


@pytest.fixture
def mallory_client():
    """Client for a user outside every test group."""
    return client_for(MALLORY)
