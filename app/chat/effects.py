"""
Applies the effects returned by chat services.

Every effect is best effort: a failure to reach one connection or to queue
one push notification is logged and the remaining effects still run. By
the time effects are applied the state change has been committed.

Channel-layer message format (handled by ChatConsumer.chat_event):
    {"type": "chat.event", "event": name, "data": payload, "exclude_user": id}
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer

from chat.constants import PRESENCE_CONFIG
from chat.events import (
    Event,
    PushNotification,
    Subscribe,
    ToEveryone,
    ToRoom,
    ToSelf,
    ToUser,
    Unsubscribe,
)
from chat.rooms import room_name

if TYPE_CHECKING:
    from chat.presence import PresenceRegistry

logger = logging.getLogger(__name__)


def channel_message(name: str, payload, exclude_user_id=None) -> dict:
    return {
        "type": "chat.event",
        "event": name,
        "data": payload,
        "exclude_user": exclude_user_id,
    }


async def apply_events(
    events,
    *,
    presence: PresenceRegistry,
    channel_layer=None,
    origin_channel: str | None = None,
    actor_id: int | None = None,
) -> None:
    """
    Deliver events and perform subscriptions in order.

    Args:
        events: Effects from ``Outcome.events``
        presence: Registry used to resolve user ids to connections
        channel_layer: Defaults to the configured layer
        origin_channel: Connection the action came in on; ``ToSelf`` and
            actor-less subscriptions resolve to it
        actor_id: Acting user, used when there is no origin connection
            (REST calls) to resolve ``ToSelf`` via the registry
    """
    layer = channel_layer or get_channel_layer()

    def resolve(user_id):
        if user_id is None:
            return origin_channel or presence.lookup(actor_id)
        return presence.lookup(user_id)

    for effect in events:
        try:
            if isinstance(effect, Event):
                await _send_event(layer, effect, resolve)
            elif isinstance(effect, Subscribe):
                channel = resolve(effect.user_id)
                if channel:
                    await layer.group_add(room_name(effect.group_id), channel)
            elif isinstance(effect, Unsubscribe):
                channel = resolve(effect.user_id)
                if channel:
                    await layer.group_discard(room_name(effect.group_id), channel)
            elif isinstance(effect, PushNotification):
                await _queue_push(effect)
            else:
                logger.warning(f"Unknown effect {effect!r} ignored")
        except Exception:
            logger.exception(f"Failed to apply {effect!r}")


async def _send_event(layer, event: Event, resolve) -> None:
    target = event.target

    if isinstance(target, ToSelf):
        channel = resolve(None)
        if channel:
            await layer.send(channel, channel_message(event.name, event.payload))
    elif isinstance(target, ToUser):
        channel = resolve(target.user_id)
        if channel:
            await layer.send(channel, channel_message(event.name, event.payload))
    elif isinstance(target, ToRoom):
        await layer.group_send(
            room_name(target.group_id),
            channel_message(event.name, event.payload, target.exclude_user_id),
        )
    elif isinstance(target, ToEveryone):
        await layer.group_send(
            PRESENCE_CONFIG.BROADCAST_GROUP,
            channel_message(event.name, event.payload),
        )


async def _queue_push(push: PushNotification) -> None:
    from notifications.tasks import send_push_notification

    await database_sync_to_async(send_push_notification.delay)(
        user_id=push.user_id,
        title=push.title,
        body=push.body,
        data=push.data,
    )


def apply_events_sync(events, *, presence: PresenceRegistry, actor_id: int | None = None) -> None:
    """Apply events from synchronous code such as DRF views."""
    async_to_sync(apply_events)(events, presence=presence, actor_id=actor_id)
