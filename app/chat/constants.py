"""
Constants and configuration for the chat module.

Import example:
    from chat.constants import MESSAGE_CONFIG, PRESENCE_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message operations."""

    MAX_TEXT_LENGTH: Final[int] = 2000  # Characters

    # Text shown in place of a message deleted for everyone
    TOMBSTONE_TEXT: Final[str] = "This message was deleted"

    # Storage folder for inline images converted to URLs
    IMAGE_UPLOAD_FOLDER: Final[str] = "chat/messages"

    # Width of the image URL columns
    MAX_IMAGE_URL_LENGTH: Final[int] = 500

    MAX_IMAGE_BYTES: Final[int] = 5 * 1024 * 1024

    SEARCH_MAX_RESULTS: Final[int] = 30


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for presence tracking and channel-layer naming."""

    # Channel-layer group every connection joins for getOnlineUsers broadcasts
    BROADCAST_GROUP: Final[str] = "chat-presence"

    # Channel-layer group name prefix for group rooms
    ROOM_PREFIX: Final[str] = "chat-group-"

    # Close code for rejected (unauthenticated) handshakes
    UNAUTHENTICATED_CLOSE_CODE: Final[int] = 4001


# =============================================================================
# Conversation Keys
# =============================================================================


class CONVERSATION_KEYS:
    """Namespacing of unread-counter and pin context keys."""

    # Direct chats use the bare partner id; groups are prefixed so a group id
    # can never collide with a user id.
    GROUP_PREFIX: Final[str] = "group_"


# =============================================================================
# Push Configuration
# =============================================================================


class PUSH_CONFIG:
    """Configuration for push notification previews."""

    PREVIEW_LENGTH: Final[int] = 50
    IMAGE_PREVIEW: Final[str] = "📷 Photo"
