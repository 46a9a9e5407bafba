"""
Tests for chat app.

This package contains test modules for:
- test_contracts.py: Expiry contract rules and storage format
- test_models.py: Group, membership and message model tests
- test_services.py: GroupService, MessageService and SweeperService tests
- test_tasks.py: Celery sweeper tasks
- test_subscriptions.py: Live snapshot streams
- test_consumers.py: WebSocket consumer tests
- test_views.py: REST API endpoint tests

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
