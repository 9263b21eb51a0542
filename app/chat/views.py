"""
REST API views for chat.

Real-time traffic goes over the WebSocket consumer; these endpoints cover
group lifecycle, paginated history, pins, stars and unread listing.
Mutations apply the same events as their WebSocket counterparts, so
connected members are notified no matter which surface the action came
from.

URL Structure:
    /api/v1/chat/groups/                              GET, POST
    /api/v1/chat/groups/{id}/                         GET, PATCH, DELETE
    /api/v1/chat/groups/{id}/messages/                GET
    /api/v1/chat/groups/{id}/events/                  GET
    /api/v1/chat/groups/{id}/members/                 POST
    /api/v1/chat/groups/{id}/members/{user_id}/       DELETE
    /api/v1/chat/groups/{id}/admins/                  POST
    /api/v1/chat/groups/{id}/leave/                   POST
    /api/v1/chat/chats/                               GET
    /api/v1/chat/chats/{user_id}/messages/            GET
    /api/v1/chat/unread-counts/                       GET
    /api/v1/chat/pins/                                GET, POST, DELETE
    /api/v1/chat/messages/{id}/star/                  POST
    /api/v1/chat/starred/                             GET
    /api/v1/chat/chats/star/                          POST
"""

from __future__ import annotations

from django.apps import apps
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.generics import GenericAPIView
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from chat.effects import apply_events_sync
from chat.models import Group
from chat.pagination import (
    ChatPartnerCursorPagination,
    GroupEventCursorPagination,
    MessageCursorPagination,
)
from chat.serializers import (
    ChatPartnerSerializer,
    ConversationContextSerializer,
    GroupCreateSerializer,
    GroupEventSerializer,
    GroupSerializer,
    GroupUpdateSerializer,
    MemberIdSerializer,
    MemberIdsSerializer,
    MessageSerializer,
    PinnedMessageSerializer,
    PinRequestSerializer,
)
from chat.services import (
    GroupService,
    HistoryService,
    PinService,
    StarService,
    UnreadService,
)

ERROR_STATUS = {
    "NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "PERMISSION_DENIED": status.HTTP_403_FORBIDDEN,
    "NOT_MEMBER": status.HTTP_403_FORBIDDEN,
}


def error_response(result) -> Response:
    body = {"error": result.error, "error_code": result.error_code}
    if result.errors:
        body["errors"] = result.errors
    return Response(
        body, status=ERROR_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST)
    )


def publish(request, outcome) -> None:
    """Apply the events of a successful REST mutation."""
    apply_events_sync(
        outcome.events,
        presence=apps.get_app_config("chat").presence,
        actor_id=request.user.id,
    )


# =============================================================================
# Groups
# =============================================================================


class GroupListCreateView(APIView):
    """
    GET  /api/v1/chat/groups/   Groups the current user belongs to
    POST /api/v1/chat/groups/   Create a group; the creator becomes admin
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_groups",
        summary="List my groups",
        responses={200: GroupSerializer(many=True)},
        tags=["Chat - Groups"],
    )
    def get(self, request):
        groups = Group.objects.filter(memberships__user=request.user).prefetch_related(
            "memberships"
        )
        return Response(GroupSerializer(groups, many=True).data)

    @extend_schema(
        operation_id="create_group",
        summary="Create group",
        description=(
            "Create a group with the given members. Online members are subscribed "
            "to the group room and receive an addedToGroup event."
        ),
        request=GroupCreateSerializer,
        responses={
            201: OpenApiResponse(response=GroupSerializer, description="Group created"),
            400: OpenApiResponse(description="Validation error"),
            404: OpenApiResponse(description="A member does not exist"),
        },
        tags=["Chat - Groups"],
    )
    def post(self, request):
        serializer = GroupCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = GroupService.create(
            creator=request.user,
            name=data["name"],
            member_ids=data["memberIds"],
            description=data["description"],
            image=data["image"],
        )
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(
            GroupSerializer(result.data.value).data, status=status.HTTP_201_CREATED
        )


class GroupDetailView(APIView):
    """
    GET    /api/v1/chat/groups/{id}/   Group with member and admin ids
    PATCH  /api/v1/chat/groups/{id}/   Update name, description or image
    DELETE /api/v1/chat/groups/{id}/   Delete the group and its messages
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_group",
        summary="Get group",
        responses={
            200: GroupSerializer,
            403: OpenApiResponse(description="Not a group member"),
            404: OpenApiResponse(description="Group not found"),
        },
        tags=["Chat - Groups"],
    )
    def get(self, request, group_id):
        result = HistoryService.group_detail(request.user, group_id)
        if not result:
            return error_response(result)
        return Response(GroupSerializer(result.data).data)

    @extend_schema(
        operation_id="update_group",
        summary="Update group",
        request=GroupUpdateSerializer,
        responses={
            200: GroupSerializer,
            403: OpenApiResponse(description="Not a group admin"),
            404: OpenApiResponse(description="Group not found"),
        },
        tags=["Chat - Groups"],
    )
    def patch(self, request, group_id):
        serializer = GroupUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = GroupService.update(request.user, group_id, **serializer.validated_data)
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(GroupSerializer(result.data.value).data)

    @extend_schema(
        operation_id="delete_group",
        summary="Delete group",
        responses={
            204: OpenApiResponse(description="Group deleted"),
            403: OpenApiResponse(description="Not a group admin"),
            404: OpenApiResponse(description="Group not found"),
        },
        tags=["Chat - Groups"],
    )
    def delete(self, request, group_id):
        result = GroupService.delete(request.user, group_id)
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupMembersView(APIView):
    """POST /api/v1/chat/groups/{id}/members/  Add members (admin only)"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="add_group_members",
        summary="Add group members",
        request=MemberIdsSerializer,
        responses={
            200: GroupSerializer,
            400: OpenApiResponse(description="All users are already in group"),
            403: OpenApiResponse(description="Not a group admin"),
            404: OpenApiResponse(description="Group or user not found"),
        },
        tags=["Chat - Groups"],
    )
    def post(self, request, group_id):
        serializer = MemberIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = GroupService.add_members(
            request.user, group_id, serializer.validated_data["userIds"]
        )
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(GroupSerializer(result.data.value).data)


class GroupMemberDetailView(APIView):
    """DELETE /api/v1/chat/groups/{id}/members/{user_id}/  Remove a member"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="remove_group_member",
        summary="Remove group member",
        description=(
            "Remove a non-admin member. The removed user's connection is "
            "unsubscribed from the room and receives youWereRemoved."
        ),
        responses={
            204: OpenApiResponse(description="Member removed"),
            403: OpenApiResponse(description="Not allowed"),
            404: OpenApiResponse(description="Group not found"),
        },
        tags=["Chat - Groups"],
    )
    def delete(self, request, group_id, user_id):
        result = GroupService.remove_member(request.user, group_id, user_id)
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(status=status.HTTP_204_NO_CONTENT)


class GroupAdminsView(APIView):
    """POST /api/v1/chat/groups/{id}/admins/  Promote a member to admin"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="promote_group_member",
        summary="Promote member to admin",
        request=MemberIdSerializer,
        responses={200: GroupSerializer},
        tags=["Chat - Groups"],
    )
    def post(self, request, group_id):
        serializer = MemberIdSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = GroupService.promote(
            request.user, group_id, serializer.validated_data["userId"]
        )
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(GroupSerializer(result.data.value).data)


class GroupLeaveView(APIView):
    """POST /api/v1/chat/groups/{id}/leave/"""

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="leave_group",
        summary="Leave group",
        request=None,
        responses={
            204: OpenApiResponse(description="Left the group"),
            400: OpenApiResponse(description="Only admin cannot leave"),
        },
        tags=["Chat - Groups"],
    )
    def post(self, request, group_id):
        result = GroupService.leave(request.user, group_id)
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# History
# =============================================================================


class ChatPartnersView(GenericAPIView):
    """GET /api/v1/chat/chats/  Recent direct chats, most recent first"""

    permission_classes = [IsAuthenticated]
    pagination_class = ChatPartnerCursorPagination
    serializer_class = ChatPartnerSerializer

    @extend_schema(
        operation_id="list_chat_partners",
        summary="List recent chats",
        description=(
            "Users the caller has exchanged direct messages with, each with "
            "presence, the last visible message and the unread count."
        ),
        responses={200: ChatPartnerSerializer(many=True)},
        tags=["Chat - History"],
    )
    def get(self, request):
        page = self.paginate_queryset(HistoryService.chat_partners(request.user))
        context = HistoryService.partner_context(request.user, page)
        serializer = ChatPartnerSerializer(page, many=True, context=context)
        return self.get_paginated_response(serializer.data)


class DirectHistoryView(GenericAPIView):
    """
    GET /api/v1/chat/chats/{user_id}/messages/

    Messages exchanged with one user, oldest first. Messages the caller
    deleted for themselves are left out.
    """

    permission_classes = [IsAuthenticated]
    pagination_class = MessageCursorPagination
    serializer_class = MessageSerializer

    @extend_schema(
        operation_id="list_direct_messages",
        summary="Direct message history",
        responses={
            200: MessageSerializer(many=True),
            404: OpenApiResponse(description="User not found"),
        },
        tags=["Chat - History"],
    )
    def get(self, request, user_id):
        result = HistoryService.direct_history(request.user, user_id)
        if not result:
            return error_response(result)

        page = self.paginate_queryset(result.data)
        return self.get_paginated_response(MessageSerializer(page, many=True).data)


class GroupHistoryView(GenericAPIView):
    """GET /api/v1/chat/groups/{id}/messages/  Group history, oldest first"""

    permission_classes = [IsAuthenticated]
    pagination_class = MessageCursorPagination
    serializer_class = MessageSerializer

    @extend_schema(
        operation_id="list_group_messages",
        summary="Group message history",
        responses={
            200: MessageSerializer(many=True),
            403: OpenApiResponse(description="Not a group member"),
            404: OpenApiResponse(description="Group not found"),
        },
        tags=["Chat - History"],
    )
    def get(self, request, group_id):
        result = HistoryService.group_history(request.user, group_id)
        if not result:
            return error_response(result)

        page = self.paginate_queryset(result.data)
        return self.get_paginated_response(MessageSerializer(page, many=True).data)


class GroupEventsView(GenericAPIView):
    """GET /api/v1/chat/groups/{id}/events/  Group timeline, newest first"""

    permission_classes = [IsAuthenticated]
    pagination_class = GroupEventCursorPagination
    serializer_class = GroupEventSerializer

    @extend_schema(
        operation_id="list_group_events",
        summary="Group timeline",
        responses={
            200: GroupEventSerializer(many=True),
            403: OpenApiResponse(description="Not a group member"),
            404: OpenApiResponse(description="Group not found"),
        },
        tags=["Chat - History"],
    )
    def get(self, request, group_id):
        result = HistoryService.group_events(request.user, group_id)
        if not result:
            return error_response(result)

        page = self.paginate_queryset(result.data)
        return self.get_paginated_response(GroupEventSerializer(page, many=True).data)


# =============================================================================
# Unread counts
# =============================================================================


class UnreadCountsView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_unread_counts",
        summary="Unread counts",
        description=(
            "Non-zero unread counters keyed by partner id or group id, e.g. "
            '{"7": {"count": 2, "isGroup": false}}.'
        ),
        responses={200: OpenApiTypes.OBJECT},
        tags=["Chat - Unread"],
    )
    def get(self, request):
        return Response(UnreadService.all_counts(request.user, non_zero=True))


# =============================================================================
# Pins
# =============================================================================


class PinsView(APIView):
    """
    GET    /api/v1/chat/pins/   My pins, optionally for one conversation
    POST   /api/v1/chat/pins/   Pin a message
    DELETE /api/v1/chat/pins/   Unpin a message
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_pins",
        summary="List pinned messages",
        parameters=[
            OpenApiParameter("chatPartnerId", OpenApiTypes.INT, required=False),
            OpenApiParameter("groupId", OpenApiTypes.INT, required=False),
        ],
        responses={200: PinnedMessageSerializer(many=True)},
        tags=["Chat - Pins"],
    )
    def get(self, request):
        target = None
        if request.query_params.get("chatPartnerId") or request.query_params.get("groupId"):
            serializer = ConversationContextSerializer(data=request.query_params)
            serializer.is_valid(raise_exception=True)
            target = serializer.validated_data["target"]

        pins = PinService.list_pins(request.user, target)
        return Response(PinnedMessageSerializer(pins, many=True).data)

    @extend_schema(
        operation_id="pin_message",
        summary="Pin message",
        request=PinRequestSerializer,
        responses={
            200: PinnedMessageSerializer,
            400: OpenApiResponse(description="Invalid context"),
            404: OpenApiResponse(description="Message not found"),
        },
        tags=["Chat - Pins"],
    )
    def post(self, request):
        serializer = PinRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PinService.pin(request.user, data["messageId"], data["target"])
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(PinnedMessageSerializer(result.data.value).data)

    @extend_schema(
        operation_id="unpin_message",
        summary="Unpin message",
        request=PinRequestSerializer,
        responses={204: OpenApiResponse(description="Unpinned")},
        tags=["Chat - Pins"],
    )
    def delete(self, request):
        serializer = PinRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = PinService.unpin(request.user, data["messageId"], data["target"])
        if not result:
            return error_response(result)

        publish(request, result.data)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Stars
# =============================================================================


class MessageStarView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="toggle_message_star",
        summary="Star or unstar a message",
        request=None,
        responses={200: OpenApiTypes.OBJECT, 404: OpenApiResponse(description="Not found")},
        tags=["Chat - Stars"],
    )
    def post(self, request, message_id):
        result = StarService.toggle_message(request.user, message_id)
        if not result:
            return error_response(result)
        return Response(result.data)


class StarredMessagesView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_starred_messages",
        summary="List starred messages",
        responses={200: MessageSerializer(many=True)},
        tags=["Chat - Stars"],
    )
    def get(self, request):
        messages = StarService.starred_messages(request.user)
        return Response(MessageSerializer(messages, many=True).data)


class ChatStarView(APIView):
    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="toggle_chat_star",
        summary="Star or unstar a conversation",
        request=ConversationContextSerializer,
        responses={200: OpenApiTypes.OBJECT},
        tags=["Chat - Stars"],
    )
    def post(self, request):
        serializer = ConversationContextSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = StarService.toggle_chat(request.user, serializer.validated_data["target"])
        if not result:
            return error_response(result)
        return Response(result.data)
