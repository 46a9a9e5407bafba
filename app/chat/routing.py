"""
WebSocket URL routing for the chat application.

This module defines the URL patterns for WebSocket connections,
mapping paths to their corresponding consumers.

URL Patterns:
    ws/chat/groups/<group_id>/          - Live group state
    ws/chat/groups/<group_id>/messages/ - Live recent messages
    ws/chat/me/groups/                  - Live list of the user's groups

Authentication:
    JWT token should be passed as query parameter: ?token=<jwt_access_token>
    The JWTAuthMiddleware validates the token and stores its user id in
    the consumer's scope.
"""

from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/groups/<uuid:group_id>/",
        consumers.GroupConsumer.as_asgi(),
    ),
    path(
        "ws/chat/groups/<uuid:group_id>/messages/",
        consumers.GroupMessagesConsumer.as_asgi(),
    ),
    path(
        "ws/chat/me/groups/",
        consumers.UserGroupsConsumer.as_asgi(),
    ),
]
