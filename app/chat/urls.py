"""
URL configuration for chat API.

All URLs are prefixed with /api/v1/chat/ in the main URL configuration.
The WebSocket endpoint lives in routing.py.
"""

from django.urls import path

from chat.views import (
    ChatPartnersView,
    ChatStarView,
    DirectHistoryView,
    GroupAdminsView,
    GroupDetailView,
    GroupEventsView,
    GroupHistoryView,
    GroupLeaveView,
    GroupListCreateView,
    GroupMemberDetailView,
    GroupMembersView,
    MessageStarView,
    PinsView,
    StarredMessagesView,
    UnreadCountsView,
)

app_name = "chat"

urlpatterns = [
    # Groups
    path("groups/", GroupListCreateView.as_view(), name="group-list"),
    path("groups/<int:group_id>/", GroupDetailView.as_view(), name="group-detail"),
    path("groups/<int:group_id>/members/", GroupMembersView.as_view(), name="group-members"),
    path(
        "groups/<int:group_id>/members/<int:user_id>/",
        GroupMemberDetailView.as_view(),
        name="group-member-detail",
    ),
    path("groups/<int:group_id>/admins/", GroupAdminsView.as_view(), name="group-admins"),
    path("groups/<int:group_id>/leave/", GroupLeaveView.as_view(), name="group-leave"),
    # History
    path("chats/", ChatPartnersView.as_view(), name="chat-partners"),
    path(
        "chats/<int:user_id>/messages/",
        DirectHistoryView.as_view(),
        name="direct-messages",
    ),
    path(
        "groups/<int:group_id>/messages/",
        GroupHistoryView.as_view(),
        name="group-messages",
    ),
    path("groups/<int:group_id>/events/", GroupEventsView.as_view(), name="group-events"),
    # Unread
    path("unread-counts/", UnreadCountsView.as_view(), name="unread-counts"),
    # Pins
    path("pins/", PinsView.as_view(), name="pins"),
    # Stars
    path("messages/<int:message_id>/star/", MessageStarView.as_view(), name="message-star"),
    path("starred/", StarredMessagesView.as_view(), name="starred-messages"),
    path("chats/star/", ChatStarView.as_view(), name="chat-star"),
]
