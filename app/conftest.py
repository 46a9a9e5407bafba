"""
Project-wide pytest setup.

Settings are adjusted once per session for the test environment; fixtures
for the chat app live in chat/tests/conftest.py.
"""

import os

import django
import pytest

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

UNIT_TEST_FILES = ("test_contracts.py", "test_models.py")


def pytest_configure():
    django.setup()

    from django.conf import settings

    # Rate limits would trip the view tests that hammer one endpoint
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Test clients speak plain HTTP
    settings.SECURE_SSL_REDIRECT = False

    # No Redis under test; change events go through an in-process layer
    settings.CHANNEL_LAYERS = {
        "default": {"BACKEND": "channels.layers.InMemoryChannelLayer"},
    }


def pytest_collection_modifyitems(items):
    """
    Mark pure-logic test files as ``unit`` and everything else as
    ``integration``, unless the test already carries one of the two.
    """
    for item in items:
        if {m.name for m in item.iter_markers()} & {"unit", "integration"}:
            continue

        if item.path.name in UNIT_TEST_FILES:
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)
