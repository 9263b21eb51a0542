"""
Cursor pagination for the chat history endpoints.

- MessageCursorPagination: direct and group history (oldest first)
- ChatPartnerCursorPagination: recent chats (most recent activity first)
- GroupEventCursorPagination: group timeline (newest first)

Design Decisions:
    - Cursors rather than offsets, so messages arriving while a client
      scrolls never shift a page
    - Every ordering ends in id to break created_at ties
"""

from rest_framework.pagination import CursorPagination


class MessageCursorPagination(CursorPagination):
    """
    Cursor pagination for message history.

    Default: 50 messages per page
    Maximum: 100 messages per page

    Query parameters:
        cursor: Encoded cursor for position
        page_size: Number of messages (optional override)
    """

    page_size = 50
    max_page_size = 100
    page_size_query_param = "page_size"
    ordering = ("created_at", "id")
    cursor_query_param = "cursor"


class ChatPartnerCursorPagination(CursorPagination):
    """
    Cursor pagination for the recent chats list.

    Orders partners by the time of the last message exchanged with them.
    """

    page_size = 20
    max_page_size = 50
    page_size_query_param = "page_size"
    ordering = ("-last_message_at", "-id")
    cursor_query_param = "cursor"


class GroupEventCursorPagination(CursorPagination):
    page_size = 50
    max_page_size = 100
    page_size_query_param = "page_size"
    ordering = ("-created_at", "-id")
    cursor_query_param = "cursor"
