"""
ViewSets for chat API.

This module provides REST API endpoints for the chat system:
- GroupViewSet: Group lifecycle, membership, admins and group messages
- MessageViewSet: Operations on a single message

URL Structure:
    /api/v1/chat/groups/                                GET, POST
    /api/v1/chat/groups/join/                           POST
    /api/v1/chat/groups/latest-messages/                GET
    /api/v1/chat/groups/{id}/                           GET, PATCH, DELETE
    /api/v1/chat/groups/{id}/leave/                     POST
    /api/v1/chat/groups/{id}/members/                   POST
    /api/v1/chat/groups/{id}/members/{user_id}/         DELETE
    /api/v1/chat/groups/{id}/admins/                    POST
    /api/v1/chat/groups/{id}/admins/{user_id}/          DELETE
    /api/v1/chat/groups/{id}/join-code/                 POST
    /api/v1/chat/groups/{id}/messages/                  GET, POST
    /api/v1/chat/groups/{id}/messages/search/           GET
    /api/v1/chat/groups/{id}/messages/unread-count/     GET
    /api/v1/chat/messages/{id}/                         GET, PATCH, DELETE
    /api/v1/chat/messages/{id}/read/                    POST
    /api/v1/chat/messages/{id}/report/                  POST

Design Decisions:
    - All operations go through the service layer
    - Service error codes map to HTTP statuses in one table
    - Authorization that a service leaves to its caller (group deletion,
      join code regeneration) is enforced here with IsGroupAdmin
"""

from __future__ import annotations

from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema, extend_schema_view
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from chat.constants import ERROR_CODES, MESSAGE_CONFIG
from chat.models import Group
from chat.permissions import IsGroupAdmin, request_user_id
from chat.serializers import (
    GroupCreateSerializer,
    GroupSerializer,
    JoinGroupSerializer,
    MemberSerializer,
    MessageCreateSerializer,
    MessageReportCreateSerializer,
    MessageReportSerializer,
    MessageSerializer,
    MessageUpdateSerializer,
)
from chat.services import GroupService, MessageService

UUID_PATTERN = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

ERROR_STATUS = {
    ERROR_CODES.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ERROR_CODES.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ERROR_CODES.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ERROR_CODES.GROUP_FULL: status.HTTP_409_CONFLICT,
    ERROR_CODES.GROUP_INACTIVE: status.HTTP_410_GONE,
    ERROR_CODES.GROUP_EXPIRED: status.HTTP_410_GONE,
    ERROR_CODES.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ERROR_CODES.CASCADE_FAILURE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def error_response(result) -> Response:
    """Render a failed ServiceResult with the status for its error code."""
    return Response(
        {"error": result.error, "error_code": result.error_code},
        status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST),
    )


@extend_schema_view(
    list=extend_schema(
        operation_id="list_groups",
        summary="List my groups",
        responses=GroupSerializer(many=True),
        tags=["Chat - Groups"],
    ),
    create=extend_schema(
        operation_id="create_group",
        summary="Create group",
        request=GroupCreateSerializer,
        responses={201: GroupSerializer},
        tags=["Chat - Groups"],
    ),
    retrieve=extend_schema(
        operation_id="get_group",
        summary="Get group",
        responses=GroupSerializer,
        tags=["Chat - Groups"],
    ),
    partial_update=extend_schema(
        operation_id="update_group",
        summary="Update group name or description",
        request=OpenApiTypes.OBJECT,
        responses=GroupSerializer,
        tags=["Chat - Groups"],
    ),
    destroy=extend_schema(
        operation_id="delete_group",
        summary="Delete group and purge its messages",
        responses={204: None},
        tags=["Chat - Groups"],
    ),
)
class GroupViewSet(viewsets.GenericViewSet):
    """
    ViewSet for group operations.

    list:
        Active groups of the current user, most recently active first.

    create:
        Create a group; the caller becomes its creator, sole member and admin.

    retrieve:
        Group details for members.

    partial_update:
        Rename or re-describe the group (admins only).

    destroy:
        Purge all messages and deactivate the group (admins only).
    """

    queryset = Group.objects.all()
    serializer_class = GroupSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = UUID_PATTERN

    def get_permissions(self):
        """Return permissions based on action."""
        if self.action in ("destroy", "regenerate_join_code"):
            return [IsAuthenticated(), IsGroupAdmin()]
        return [IsAuthenticated()]

    def list(self, request):
        """List the current user's groups."""
        result = GroupService.get_user_groups(request_user_id(request))
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data, many=True).data)

    def create(self, request):
        """Create a group."""
        serializer = GroupCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = GroupService.create_group(
            name=data["name"],
            description=data.get("description", ""),
            created_by=request_user_id(request),
            contract=data["expiry_contract"],
            max_members=data["max_members"],
        )
        if not result.success:
            return error_response(result)

        return Response(GroupSerializer(result.data).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        """Get a group the user belongs to."""
        result = GroupService.get_group(pk, request_user_id(request))
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    def partial_update(self, request, pk=None):
        """Update name and/or description."""
        result = GroupService.update_group(
            pk, {key: request.data.get(key) for key in request.data}, updated_by=request_user_id(request)
        )
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    def destroy(self, request, pk=None):
        """Delete the group."""
        group = self.get_object()

        result = GroupService.delete_group(group.id)
        if not result.success:
            return error_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="join_group",
        summary="Join group by code",
        request=JoinGroupSerializer,
        responses={
            200: GroupSerializer,
            404: OpenApiResponse(description="No active group with this code"),
            409: OpenApiResponse(description="Group is full"),
        },
        tags=["Chat - Groups"],
    )
    @action(detail=False, methods=["post"])
    def join(self, request):
        """Join an active group by its join code."""
        serializer = JoinGroupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = GroupService.join_group_by_code(
            request_user_id(request), serializer.validated_data["join_code"]
        )
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="leave_group",
        summary="Leave group",
        description="Leave the group. When the creator leaves, the group is deleted.",
        request=None,
        responses={200: GroupSerializer},
        tags=["Chat - Groups"],
    )
    @action(detail=True, methods=["post"])
    def leave(self, request, pk=None):
        """Leave the group."""
        user_id = request_user_id(request)
        result = GroupService.remove_member(pk, user_id, user_id)
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="add_group_member",
        summary="Add member",
        request=MemberSerializer,
        responses={200: GroupSerializer},
        tags=["Chat - Groups"],
    )
    @action(detail=True, methods=["post"])
    def members(self, request, pk=None):
        """Add a member (admins only)."""
        serializer = MemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = GroupService.add_member(
            pk, serializer.validated_data["user_id"], request_user_id(request)
        )
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="remove_group_member",
        summary="Remove member",
        request=None,
        responses={200: GroupSerializer},
        tags=["Chat - Groups"],
    )
    @action(
        detail=True,
        methods=["delete"],
        url_path=r"members/(?P<user_id>[^/]+)",
        url_name="remove-member",
    )
    def remove_member(self, request, pk=None, user_id=None):
        """Remove a member (admins, or the member themselves)."""
        result = GroupService.remove_member(pk, user_id, request_user_id(request))
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="make_group_admin",
        summary="Promote member to admin",
        request=MemberSerializer,
        responses={200: GroupSerializer},
        tags=["Chat - Groups"],
    )
    @action(detail=True, methods=["post"])
    def admins(self, request, pk=None):
        """Grant admin rights (admins only)."""
        serializer = MemberSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = GroupService.make_admin(
            pk, serializer.validated_data["user_id"], request_user_id(request)
        )
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="revoke_group_admin",
        summary="Revoke admin rights",
        request=None,
        responses={200: GroupSerializer},
        tags=["Chat - Groups"],
    )
    @action(
        detail=True,
        methods=["delete"],
        url_path=r"admins/(?P<user_id>[^/]+)",
        url_name="revoke-admin",
    )
    def revoke_admin(self, request, pk=None, user_id=None):
        """Revoke admin rights (admins only; never the creator)."""
        result = GroupService.revoke_admin(pk, user_id, request_user_id(request))
        if not result.success:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="regenerate_join_code",
        summary="Regenerate join code",
        request=None,
        responses={200: OpenApiTypes.OBJECT},
        tags=["Chat - Groups"],
    )
    @action(detail=True, methods=["post"], url_path="join-code", url_name="join-code")
    def regenerate_join_code(self, request, pk=None):
        """Issue a new join code (admins only)."""
        group = self.get_object()

        result = GroupService.regenerate_join_code(group.id)
        if not result.success:
            return error_response(result)
        return Response({"join_code": result.data})

    @extend_schema(
        operation_id="group_messages",
        summary="List or send group messages",
        parameters=[
            OpenApiParameter("limit", OpenApiTypes.INT, description="Page size (max 100)"),
            OpenApiParameter("before", OpenApiTypes.UUID, description="Return messages older than this one"),
        ],
        request=MessageCreateSerializer,
        responses={200: MessageSerializer(many=True), 201: MessageSerializer},
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["get", "post"])
    def messages(self, request, pk=None):
        """
        GET: A chronological page of messages (members only).
        POST: Send a message.
        """
        user_id = request_user_id(request)

        if request.method == "POST":
            serializer = MessageCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data

            result = MessageService.send_message(
                pk,
                user_id,
                data["content"],
                sender_name=data.get("sender_name", ""),
                message_type=data["message_type"],
                reply_to_id=data.get("reply_to_id"),
                self_destruct_duration=data.get("self_destruct_duration"),
            )
            if not result.success:
                return error_response(result)
            return Response(MessageSerializer(result.data).data, status=status.HTTP_201_CREATED)

        try:
            limit = int(request.query_params.get("limit", MESSAGE_CONFIG.DEFAULT_PAGE_SIZE))
        except ValueError:
            return Response(
                {"error": "limit must be a number", "error_code": ERROR_CODES.VALIDATION_ERROR},
                status=status.HTTP_400_BAD_REQUEST,
            )

        result = MessageService.get_group_messages(
            pk, user_id, limit=limit, before_message_id=request.query_params.get("before")
        )
        if not result.success:
            return error_response(result)
        return Response(MessageSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="search_group_messages",
        summary="Search recent messages",
        parameters=[OpenApiParameter("q", OpenApiTypes.STR, description="Search text")],
        responses=MessageSerializer(many=True),
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["get"], url_path="messages/search", url_name="message-search")
    def search_messages(self, request, pk=None):
        """Case-insensitive search over content and sender names."""
        result = MessageService.search_messages(
            pk, request.query_params.get("q", ""), request_user_id(request)
        )
        if not result.success:
            return error_response(result)
        return Response(MessageSerializer(result.data, many=True).data)

    @extend_schema(
        operation_id="group_unread_count",
        summary="Unread message count",
        responses=OpenApiTypes.OBJECT,
        tags=["Chat - Messages"],
    )
    @action(
        detail=True,
        methods=["get"],
        url_path="messages/unread-count",
        url_name="unread-count",
    )
    def unread_count(self, request, pk=None):
        """Messages from other members not yet read by the user."""
        result = MessageService.get_unread_count(pk, request_user_id(request))
        if not result.success:
            return error_response(result)
        return Response({"unread_count": result.data})

    @extend_schema(
        operation_id="latest_group_messages",
        summary="Latest message per group",
        responses=OpenApiTypes.OBJECT,
        tags=["Chat - Messages"],
    )
    @action(detail=False, methods=["get"], url_path="latest-messages", url_name="latest-messages")
    def latest_messages(self, request):
        """Latest message for each of the user's groups, keyed by group id."""
        groups = GroupService.get_user_groups(request_user_id(request))
        if not groups.success:
            return error_response(groups)

        result = MessageService.get_latest_group_messages([group.id for group in groups.data])
        if not result.success:
            return error_response(result)
        return Response(
            {group_id: MessageSerializer(message).data for group_id, message in result.data.items()}
        )


@extend_schema_view(
    retrieve=extend_schema(
        operation_id="get_message",
        summary="Get message",
        responses=MessageSerializer,
        tags=["Chat - Messages"],
    ),
    partial_update=extend_schema(
        operation_id="edit_message",
        summary="Edit message",
        request=MessageUpdateSerializer,
        responses={
            200: MessageSerializer,
            403: OpenApiResponse(description="Not the sender, or a system message"),
        },
        tags=["Chat - Messages"],
    ),
    destroy=extend_schema(
        operation_id="delete_message",
        summary="Delete message",
        description="Senders delete their own messages; group admins may delete system messages.",
        responses={204: None},
        tags=["Chat - Messages"],
    ),
)
class MessageViewSet(viewsets.GenericViewSet):
    """
    ViewSet for single-message operations.

    retrieve:
        Get a message from a group the user belongs to.

    partial_update:
        Edit the content of your own message.

    destroy:
        Delete your own message, or a system message as a group admin.
    """

    serializer_class = MessageSerializer
    permission_classes = [IsAuthenticated]
    lookup_value_regex = UUID_PATTERN

    def _load(self, request, pk):
        """Fetch the message and its group, checking membership."""
        result = MessageService.get_message(pk)
        if not result.success:
            return None, error_response(result)

        access = GroupService.get_group(result.data.group_id, request_user_id(request))
        if not access.success:
            return None, error_response(access)
        return (result.data, access.data), None

    def retrieve(self, request, pk=None):
        """Get a message."""
        loaded, error = self._load(request, pk)
        if error:
            return error
        message, _ = loaded
        return Response(MessageSerializer(message).data)

    def partial_update(self, request, pk=None):
        """Edit a message."""
        serializer = MessageUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.edit_message(
            pk, serializer.validated_data["content"], request_user_id(request)
        )
        if not result.success:
            return error_response(result)
        return Response(MessageSerializer(result.data).data)

    def destroy(self, request, pk=None):
        """Delete a message."""
        loaded, error = self._load(request, pk)
        if error:
            return error
        message, group = loaded
        user_id = request_user_id(request)

        result = MessageService.delete_message(
            message.id, user_id, elevated=group.is_admin(user_id)
        )
        if not result.success:
            return error_response(result)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @extend_schema(
        operation_id="mark_message_read",
        summary="Mark message as read",
        request=None,
        responses=MessageSerializer,
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["post"])
    def read(self, request, pk=None):
        """Record a read receipt; starts any self-destruct timer."""
        result = MessageService.mark_read(pk, request_user_id(request))
        if not result.success:
            return error_response(result)
        return Response(MessageSerializer(result.data).data)

    @extend_schema(
        operation_id="report_message",
        summary="Report message",
        request=MessageReportCreateSerializer,
        responses={201: MessageReportSerializer},
        tags=["Chat - Messages"],
    )
    @action(detail=True, methods=["post"])
    def report(self, request, pk=None):
        """Report a message to moderators."""
        serializer = MessageReportCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = MessageService.report_message(
            pk, request_user_id(request), serializer.validated_data["reason"]
        )
        if not result.success:
            return error_response(result)
        return Response(MessageReportSerializer(result.data).data, status=status.HTTP_201_CREATED)
