"""
Outbound events and side effects produced by chat services.

Services never touch the channel layer. They persist state and return an
``Outcome``: the primary value plus an ordered list of effects describing
who must be told what. ``chat.effects.apply_events`` performs the network
work afterwards, so routing decisions are testable without a live socket.

Effect kinds:
    Event(name, payload, target)  - push one JSON event
    PushNotification(...)         - best-effort device notification
    Subscribe(group_id, user_id)  - add the user's connection to a group room
    Unsubscribe(group_id, user_id) - remove it (forced on member removal)

Event targets:
    ToUser(user_id)    - the user's registered connection, dropped if offline
    ToSelf()           - the acting connection (or the actor's connection
                         when the action came in over REST)
    ToRoom(group_id)   - every connection subscribed to the group room
    ToEveryone()       - every connected client (presence broadcasts)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


# =============================================================================
# Event names
# =============================================================================


class EventName:
    """Server to client event names."""

    ONLINE_USERS = "getOnlineUsers"
    NEW_MESSAGE = "newMessage"
    NEW_GROUP_MESSAGE = "newGroupMessage"
    MESSAGE_STATUS = "messageStatusUpdate"
    GROUP_MESSAGE_STATUS = "groupMessageStatusUpdate"
    BULK_MESSAGE_STATUS = "bulkMessageStatusUpdate"
    BULK_GROUP_MESSAGE_STATUS = "bulkGroupMessageStatusUpdate"
    RECENT_CHAT = "recentChatUpdated"
    RECENT_GROUP = "recentGroupUpdated"
    UNREAD_COUNT = "unreadCountUpdated"
    GROUP_UNREAD_COUNT = "groupUnreadCountUpdated"
    ALL_UNREAD_COUNTS = "allUnreadCounts"
    MESSAGES_SEEN = "messagesSeen"
    GROUP_MESSAGES_SEEN = "groupMessagesSeen"
    TYPING = "typing"
    STOP_TYPING = "stopTyping"
    MESSAGE_PINNED = "messagePinned"
    MESSAGE_UNPINNED = "messageUnpinned"
    MESSAGE_DELETED = "messageDeleted"
    MESSAGE_EDITED = "messageEdited"
    JOINED_ROOM = "joinedGroupRoom"
    LEFT_ROOM = "leftGroupRoom"
    REMOVED_FROM_GROUP = "youWereRemoved"
    ADDED_TO_GROUP = "addedToGroup"
    MEMBER_ADDED = "memberAdded"
    MEMBER_REMOVED = "memberRemoved"
    MEMBER_PROMOTED = "memberPromoted"
    MEMBER_LEFT = "memberLeft"
    GROUP_UPDATED = "groupUpdated"
    GROUP_DELETED = "groupDeleted"
    DEVICE_TOKEN_REGISTERED = "deviceTokenRegistered"
    DEVICE_TOKEN_REMOVED = "deviceTokenRemoved"
    SEARCH_RESULTS = "searchResults"
    ERROR = "error"


# =============================================================================
# Targets
# =============================================================================


@dataclass(frozen=True)
class ToUser:
    user_id: int


@dataclass(frozen=True)
class ToSelf:
    pass


@dataclass(frozen=True)
class ToRoom:
    """Group room broadcast; connections of ``exclude_user_id`` skip it."""

    group_id: int
    exclude_user_id: int | None = None


@dataclass(frozen=True)
class ToEveryone:
    pass


Target = Union[ToUser, ToSelf, ToRoom, ToEveryone]


# =============================================================================
# Effects
# =============================================================================


@dataclass(frozen=True)
class Event:
    name: str
    payload: Any
    target: Target


@dataclass(frozen=True)
class PushNotification:
    user_id: int
    title: str
    body: str
    data: dict = field(default_factory=dict)


@dataclass(frozen=True)
class Subscribe:
    """Add a connection to a group room; ``user_id=None`` means the acting one."""

    group_id: int
    user_id: int | None = None


@dataclass(frozen=True)
class Unsubscribe:
    """Remove a connection from a group room; ``user_id=None`` means the acting one."""

    group_id: int
    user_id: int | None = None


Effect = Union[Event, PushNotification, Subscribe, Unsubscribe]


@dataclass
class Outcome(Generic[T]):
    """
    Value returned by a successful service call plus the effects to apply.

    Example:
        outcome = Outcome(message)
        outcome.emit(EventName.NEW_MESSAGE, payload, ToUser(receiver.id))
        return ServiceResult.success(outcome)
    """

    value: T = None
    events: list = field(default_factory=list)

    def emit(self, name: str, payload: Any, target: Target) -> Outcome[T]:
        self.events.append(Event(name, payload, target))
        return self

    def add(self, effect: Effect) -> Outcome[T]:
        self.events.append(effect)
        return self

    def extend(self, effects) -> Outcome[T]:
        self.events.extend(effects)
        return self

    def named(self, name: str) -> list[Event]:
        """Events with the given name, in emission order."""
        return [e for e in self.events if isinstance(e, Event) and e.name == name]

    def effects_of(self, kind: type) -> list:
        return [e for e in self.events if isinstance(e, kind)]
