"""
WebSocket consumer for the chat application.

One ChatConsumer instance serves one authenticated connection. It decodes
inbound events, calls the chat services in a worker thread and applies the
returned effects through ``chat.effects.apply_events``.

Authentication:
    JWTAuthMiddleware attaches the user to self.scope["user"]; anonymous
    handshakes are closed with code 4001 before presence is touched.

Channel Groups:
    "chat-presence"      every connection, for getOnlineUsers broadcasts
    "chat-group-<id>"    group rooms, joined automatically for member groups

Frames (both directions):
    {"type": "<event>", "data": {...}}

    Inbound handlers also accept the payload keys at the top level.
"""

from __future__ import annotations

import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.apps import apps

from chat.constants import PRESENCE_CONFIG
from chat.effects import apply_events
from chat.events import Event, EventName, Subscribe, ToEveryone, Unsubscribe
from chat.presence import PresenceRegistry, PresenceService
from chat.rooms import RoomService, member_group_ids, room_name
from chat.serializers import MessageSerializer
from chat.services import (
    DeliveryService,
    MessageActionService,
    PinService,
    ReconciliationService,
    SearchService,
    SeenService,
    TypingService,
    UnreadService,
)
from chat.targets import parse_target
from core.exceptions import ValidationError
from notifications.services import DeviceTokenService

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for real-time chat.

    Handles:
        - Presence registration and online-user broadcasts
        - Direct and group messaging with delivery status
        - Seen receipts, typing indicators, pins, edits and deletes
        - Group room subscriptions
        - Device token registration and message search

    Attributes:
        presence: Process-wide PresenceRegistry (injected via as_asgi)
        user: Authenticated user, None until connected
        rooms: Ids of group rooms this connection subscribed to
    """

    presence: PresenceRegistry | None = None

    handlers = {
        "sendMessage": "handle_send_message",
        "sendGroupMessage": "handle_send_group_message",
        "markMessagesAsSeen": "handle_mark_seen",
        "markGroupMessagesAsSeen": "handle_mark_group_seen",
        "typing": "handle_typing",
        "stopTyping": "handle_stop_typing",
        "pinMessage": "handle_pin",
        "unpinMessage": "handle_unpin",
        "deleteMessage": "handle_delete",
        "editMessage": "handle_edit",
        "joinGroup": "handle_join_group",
        "leaveGroup": "handle_leave_group",
        "registerDeviceToken": "handle_register_device_token",
        "removeDeviceToken": "handle_remove_device_token",
        "searchMessages": "handle_search",
        "requestUnreadCounts": "handle_unread_counts",
    }

    def __init__(self, *args, presence: PresenceRegistry | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.presence = presence or apps.get_app_config("chat").presence
        self.user = None
        self.rooms: set[int] = set()

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self):
        """
        Handle WebSocket connection.

        Flow:
            1. Reject anonymous users (close 4001) before any state change
            2. Accept, register the channel, mark the user online
            3. Broadcast the online user list
            4. Subscribe to member group rooms
            5. Reconcile messages left in "sent"
        """
        user = self.scope.get("user")
        if user is None or not user.is_authenticated:
            logger.warning("Rejected unauthenticated chat connection")
            await self.close(code=PRESENCE_CONFIG.UNAUTHENTICATED_CLOSE_CODE)
            return

        self.user = user
        subprotocol = "jwt" if "jwt" in self.scope.get("subprotocols", []) else None
        await self.accept(subprotocol=subprotocol)

        previous = self.presence.register(user.id, self.channel_name)
        if previous and previous != self.channel_name:
            logger.info(f"User {user.id} opened a new connection, replacing {previous}")

        await self.channel_layer.group_add(
            PRESENCE_CONFIG.BROADCAST_GROUP, self.channel_name
        )
        await database_sync_to_async(PresenceService.mark_online)(user.id)
        await self.broadcast_online_users()

        await self._run(RoomService.auto_join, user)
        await self._run(ReconciliationService.reconcile, user, presence=self.presence)

        logger.info(f"User {user.id} connected to chat")

    async def disconnect(self, close_code):
        """
        Handle WebSocket disconnection.

        Leaves every channel group. The user only goes offline when this
        connection is still the registered one.
        """
        if self.user is None:
            return

        await self.channel_layer.group_discard(
            PRESENCE_CONFIG.BROADCAST_GROUP, self.channel_name
        )
        group_ids = set(await database_sync_to_async(member_group_ids)(self.user.id))
        for group_id in group_ids | self.rooms:
            await self.channel_layer.group_discard(room_name(group_id), self.channel_name)
        self.rooms.clear()

        if self.presence.unregister(self.user.id, self.channel_name):
            await database_sync_to_async(PresenceService.mark_offline)(self.user.id)
            await self.broadcast_online_users()

        logger.info(f"User {self.user.id} disconnected from chat ({close_code})")

    async def broadcast_online_users(self):
        online = self.presence.online_user_ids()
        await apply_events(
            [Event(EventName.ONLINE_USERS, online, ToEveryone())],
            presence=self.presence,
            channel_layer=self.channel_layer,
        )

    # =========================================================================
    # Inbound
    # =========================================================================

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        if not text_data:
            await self.send_error("Invalid message format")
            return
        try:
            content = await self.decode_json(text_data)
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON")
            return
        await self.receive_json(content, **kwargs)

    async def receive_json(self, content, **kwargs):
        """
        Dispatch an inbound event to its handler.

        Unexpected errors are logged and reported as "Server error"; the
        connection stays open.
        """
        if not isinstance(content, dict):
            await self.send_error("Invalid message format")
            return

        event_type = content.get("type")
        handler_name = self.handlers.get(event_type)
        if handler_name is None:
            await self.send_error(f"Unknown event type: {event_type}")
            return

        data = content.get("data")
        if not isinstance(data, dict):
            data = {key: value for key, value in content.items() if key != "type"}

        try:
            await getattr(self, handler_name)(data)
        except Exception:
            logger.exception(
                f"Error handling {event_type} from user {getattr(self.user, 'id', None)}"
            )
            await self.send_error("Server error")

    async def handle_send_message(self, data):
        await self._run(
            DeliveryService.send_direct,
            self.user,
            data.get("receiverId"),
            data.get("text"),
            data.get("image"),
            data.get("replyTo"),
            presence=self.presence,
        )

    async def handle_send_group_message(self, data):
        await self._run(
            DeliveryService.send_group,
            self.user,
            data.get("groupId"),
            data.get("text"),
            data.get("image"),
            data.get("replyTo"),
            presence=self.presence,
        )

    async def handle_mark_seen(self, data):
        await self._run(
            SeenService.mark_direct_seen,
            self.user,
            data.get("senderId"),
            presence=self.presence,
        )

    async def handle_mark_group_seen(self, data):
        await self._run(
            SeenService.mark_group_seen,
            self.user,
            data.get("groupId"),
            presence=self.presence,
        )

    async def handle_typing(self, data):
        await self._run(TypingService.notify, self.user, data.get("receiverId"))

    async def handle_stop_typing(self, data):
        await self._run(TypingService.notify, self.user, data.get("receiverId"), stop=True)

    async def handle_pin(self, data):
        target = await self._target(data)
        if target is not None:
            await self._run(PinService.pin, self.user, data.get("messageId"), target)

    async def handle_unpin(self, data):
        target = await self._target(data)
        if target is not None:
            await self._run(PinService.unpin, self.user, data.get("messageId"), target)

    async def handle_delete(self, data):
        await self._run(
            MessageActionService.delete,
            self.user,
            data.get("messageId"),
            data.get("deleteType"),
        )

    async def handle_edit(self, data):
        await self._run(
            MessageActionService.edit,
            self.user,
            data.get("messageId"),
            data.get("newText"),
        )

    async def handle_join_group(self, data):
        await self._run(RoomService.join, self.user, data.get("groupId"))

    async def handle_leave_group(self, data):
        await self._run(RoomService.leave, self.user, data.get("groupId"))

    async def handle_register_device_token(self, data):
        result = await database_sync_to_async(DeviceTokenService.register)(
            self.user, data.get("token"), data.get("deviceType") or "web"
        )
        if not result:
            await self.send_error(result.error, result.error_code)
            return
        await self.send_event(
            EventName.DEVICE_TOKEN_REGISTERED,
            {"token": result.data.token, "deviceType": result.data.device_type},
        )

    async def handle_remove_device_token(self, data):
        result = await database_sync_to_async(DeviceTokenService.remove)(
            self.user, data.get("token")
        )
        if not result:
            await self.send_error(result.error, result.error_code)
            return
        await self.send_event(
            EventName.DEVICE_TOKEN_REMOVED,
            {"token": data.get("token"), "removed": result.data},
        )

    async def handle_search(self, data):
        result = await database_sync_to_async(self._search)(data.get("query"))
        if not result:
            await self.send_error(result.error, result.error_code)
            return
        await self.send_event(
            EventName.SEARCH_RESULTS,
            {"query": data.get("query"), "results": result.data},
        )

    async def handle_unread_counts(self, data):
        counts = await database_sync_to_async(UnreadService.all_counts)(self.user)
        await self.send_event(EventName.ALL_UNREAD_COUNTS, counts)

    # =========================================================================
    # Channel layer handlers
    # =========================================================================

    async def chat_event(self, event):
        """
        Handle chat.event messages from the channel layer.

        Room broadcasts may name a user whose connections skip the event.
        """
        exclude = event.get("exclude_user")
        if exclude is not None and self.user is not None and self.user.id == exclude:
            return
        await self.send_event(event["event"], event["data"])

    # =========================================================================
    # Helpers
    # =========================================================================

    async def send_event(self, name: str, data):
        await self.send_json({"type": name, "data": data})

    async def send_error(self, message: str, code: str | None = None):
        data = {"message": message}
        if code:
            data["code"] = code
        await self.send_event(EventName.ERROR, data)

    async def _target(self, data):
        try:
            return parse_target(
                chat_partner_id=data.get("chatPartnerId"),
                group_id=data.get("groupId"),
            )
        except ValidationError as e:
            await self.send_error(e.message, e.error_code)
            return None

    def _search(self, query):
        result = SearchService.search(self.user, query)
        return result.map(lambda messages: MessageSerializer(messages, many=True).data)

    async def _run(self, service_method, *args, **kwargs):
        """
        Call a service in a worker thread and apply its effects.

        Failures are sent to this connection as an error event.
        """
        result = await database_sync_to_async(service_method)(*args, **kwargs)
        if not result:
            await self.send_error(result.error, result.error_code)
            return None

        outcome = result.data
        self._track_rooms(outcome.events)
        await apply_events(
            outcome.events,
            presence=self.presence,
            channel_layer=self.channel_layer,
            origin_channel=self.channel_name,
            actor_id=self.user.id,
        )
        return outcome

    def _track_rooms(self, effects):
        for effect in effects:
            if effect.__class__ not in (Subscribe, Unsubscribe):
                continue
            if effect.user_id not in (None, self.user.id):
                continue
            if isinstance(effect, Subscribe):
                self.rooms.add(effect.group_id)
            else:
                self.rooms.discard(effect.group_id)
