"""
URL configuration for chat API.

URL Structure:
    Groups:
        /groups/                                 GET, POST
        /groups/join/                            POST
        /groups/latest-messages/                 GET
        /groups/{id}/                            GET, PATCH, DELETE
        /groups/{id}/leave/                      POST
        /groups/{id}/members/                    POST
        /groups/{id}/members/{user_id}/          DELETE
        /groups/{id}/admins/                     POST
        /groups/{id}/admins/{user_id}/           DELETE
        /groups/{id}/join-code/                  POST

    Group messages:
        /groups/{id}/messages/                   GET, POST
        /groups/{id}/messages/search/            GET
        /groups/{id}/messages/unread-count/      GET

    Messages:
        /messages/{id}/                          GET, PATCH, DELETE
        /messages/{id}/read/                     POST
        /messages/{id}/report/                   POST

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from chat.views import GroupViewSet, MessageViewSet

router = DefaultRouter()
router.register(r"groups", GroupViewSet, basename="group")
router.register(r"messages", MessageViewSet, basename="message")

app_name = "chat"

urlpatterns = [
    path("", include(router.urls)),
]
