"""
Chat system service layer.

Services:
    UnreadService: Atomic per-conversation unread counters
    DeliveryService: Direct and group message routing with status updates
    ReconciliationService: Catch-up of "sent" messages on reconnect
    SeenService: Mark-seen for direct and group conversations
    PinService: Per-user pins scoped to a conversation context
    MessageActionService: Edit and delete (for me / for everyone)
    TypingService: Typing indicators
    SearchService: Text search over visible messages
    HistoryService: Paginated history, recent chats and group timeline
    StarService: Starred messages and chats
    GroupService: Group lifecycle with membership broadcasts

Design Principles:
    - Services are stateless classmethods returning ServiceResult
    - A successful result carries an Outcome: the value plus the events and
      effects to apply; services never talk to the channel layer
    - Presence is passed in (PresenceRegistry) rather than imported
    - Expected failures are returned, unexpected ones raised
    - Every write of one operation happens inside a single transaction;
      events are applied by the caller after it commits

Usage:
    result = DeliveryService.send_direct(
        sender=user, receiver_id=7, text="hi", presence=registry
    )
    if result.success:
        await apply_events(result.data.events, presence=registry, ...)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.db.models import F, OuterRef, Q, Subquery
from django.utils import timezone

from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from chat.constants import CONVERSATION_KEYS, MESSAGE_CONFIG, PUSH_CONFIG
from chat.events import (
    EventName,
    Outcome,
    PushNotification,
    Subscribe,
    ToRoom,
    ToSelf,
    ToUser,
    Unsubscribe,
)
from chat.media import is_remote, store_inline_image, validate_image_url
from chat.models import (
    Group,
    GroupEvent,
    GroupEventType,
    GroupMember,
    GroupRole,
    Message,
    MessageStatus,
    PinnedMessage,
    StarredChat,
    StarredMessage,
    UnreadCounter,
)
from chat.rooms import member_group_ids, removal_effects
from chat.serializers import group_payload, message_payload
from chat.targets import ConversationTarget, DirectTarget, GroupTarget, coerce_id

if TYPE_CHECKING:
    from chat.presence import PresenceRegistry

logger = logging.getLogger(__name__)

User = get_user_model()


def group_key(group_id) -> str:
    return f"{CONVERSATION_KEYS.GROUP_PREFIX}{group_id}"


def push_preview(text: str) -> str:
    """Notification body: text cut at the preview length, or the photo label."""
    if not text:
        return PUSH_CONFIG.IMAGE_PREVIEW
    if len(text) > PUSH_CONFIG.PREVIEW_LENGTH:
        return text[: PUSH_CONFIG.PREVIEW_LENGTH] + "..."
    return text


def _message_queryset():
    return Message.objects.select_related("sender", "reply_to")


def _can_access(user_id: int, message: Message) -> bool:
    """Whether the user is a participant of the message's conversation."""
    if message.group_id is not None:
        return GroupMember.objects.filter(
            group_id=message.group_id, user_id=user_id
        ).exists()
    return message.involves(user_id)


# =============================================================================
# Unread counters
# =============================================================================


class UnreadService(BaseService):
    """
    Per-user, per-conversation unread counters.

    Counters are only changed with database-side expressions so two
    messages arriving for the same offline user at once both count.
    """

    @classmethod
    def increment(cls, user_ids, key: str) -> None:
        user_ids = list(user_ids)
        if not user_ids:
            return
        for user_id in user_ids:
            UnreadCounter.objects.get_or_create(user_id=user_id, conversation_key=key)
        UnreadCounter.objects.filter(
            user_id__in=user_ids, conversation_key=key
        ).update(count=F("count") + 1, updated_at=timezone.now())

    @classmethod
    def clear(cls, user_id: int, key: str) -> None:
        UnreadCounter.objects.filter(user_id=user_id, conversation_key=key).update(
            count=0, updated_at=timezone.now()
        )

    @classmethod
    def get(cls, user_id: int, key: str) -> int:
        return (
            UnreadCounter.objects.filter(user_id=user_id, conversation_key=key)
            .values_list("count", flat=True)
            .first()
            or 0
        )

    @classmethod
    def counts_for(cls, user_ids, key: str) -> dict[int, int]:
        """Current count of ``key`` for several users; missing rows are 0."""
        found = dict(
            UnreadCounter.objects.filter(
                user_id__in=list(user_ids), conversation_key=key
            ).values_list("user_id", "count")
        )
        return {user_id: found.get(user_id, 0) for user_id in user_ids}

    @classmethod
    def all_counts(cls, user: User, non_zero: bool = False) -> dict[str, dict]:
        """
        All counters of a user keyed by the bare conversation id.

        Returns:
            {"7": {"count": 2, "isGroup": False},
             "3": {"count": 1, "isGroup": True}}
        """
        rows = UnreadCounter.objects.filter(user=user)
        if non_zero:
            rows = rows.filter(count__gt=0)

        counts = {}
        for key, count in rows.values_list("conversation_key", "count"):
            is_group = key.startswith(CONVERSATION_KEYS.GROUP_PREFIX)
            clean_id = key[len(CONVERSATION_KEYS.GROUP_PREFIX):] if is_group else key
            counts[clean_id] = {"count": count, "isGroup": is_group}
        return counts


# =============================================================================
# Delivery
# =============================================================================


class DeliveryService(BaseService):
    """
    Routes new messages to their recipients.

    Methods:
        send_direct: Persist and route a direct message
        send_group: Persist and fan out a group message

    Both validate everything before the first write; a failed validation
    leaves no message, counter or event behind.
    """

    @classmethod
    def _clean_text(cls, text) -> str:
        return text.strip() if isinstance(text, str) else ""

    @classmethod
    def _prepare_content(cls, text, image) -> ServiceResult[tuple[str, str]]:
        text = cls._clean_text(text)
        image = image.strip() if isinstance(image, str) else ""

        if len(text) > MESSAGE_CONFIG.MAX_TEXT_LENGTH:
            return ServiceResult.failure(
                f"Message text cannot exceed {MESSAGE_CONFIG.MAX_TEXT_LENGTH} characters",
                error_code="TEXT_TOO_LONG",
            )
        if image and is_remote(image):
            try:
                validate_image_url(image)
            except BaseApplicationError as e:
                return ServiceResult.from_exception(e)
        return ServiceResult.success((text, image))

    @classmethod
    def resolve_image(cls, image: str) -> ServiceResult[str]:
        if not image:
            return ServiceResult.success("")
        try:
            return ServiceResult.success(store_inline_image(image))
        except BaseApplicationError as e:
            return cls.handle_exception(e, "inline image upload", logging.WARNING)

    @classmethod
    def _resolve_reply(
        cls, reply_to_id, *, receiver_pair=None, group_id=None
    ) -> ServiceResult[Message | None]:
        if reply_to_id in (None, ""):
            return ServiceResult.success(None)

        reply_id = coerce_id(reply_to_id)
        reply = Message.objects.filter(id=reply_id).first() if reply_id else None
        if reply is not None:
            if group_id is not None and reply.group_id != group_id:
                reply = None
            elif receiver_pair is not None and {
                reply.sender_id,
                reply.receiver_id,
            } != set(receiver_pair):
                reply = None

        if reply is None:
            return ServiceResult.failure(
                "Invalid reply message ID", error_code="INVALID_REPLY"
            )
        return ServiceResult.success(reply)

    @classmethod
    def send_direct(
        cls,
        sender: User,
        receiver_id,
        text: str | None = None,
        image: str | None = None,
        reply_to=None,
        *,
        presence: PresenceRegistry,
    ) -> ServiceResult[Outcome[Message]]:
        """
        Send a direct message.

        Flow:
            1. Validate receiver id, content, receiver existence
            2. Upload an inline image, resolve the reply reference
            3. Persist with status "sent"
            4. Online recipient: deliver, push message, summary and count
               Offline recipient: increment unread, queue push notification
            5. Status feedback and summary to the sender

        Error codes:
            VALIDATION_ERROR: receiver id or content missing
            TEXT_TOO_LONG: text over the maximum length
            NOT_FOUND: receiver does not exist
            INVALID_IMAGE: inline payload is not a decodable, allowed image
            INVALID_IMAGE_URL: image URL too long or malformed
            INVALID_REPLY: reply reference absent or from another chat
        """
        receiver_id = coerce_id(receiver_id)
        prepared = cls._prepare_content(text, image)
        if not prepared:
            return prepared
        text, image = prepared.data

        if receiver_id is None or not (text or image):
            return ServiceResult.failure(
                "Receiver ID and message content are required",
                error_code="VALIDATION_ERROR",
            )

        receiver = User.objects.filter(id=receiver_id, is_active=True).first()
        if receiver is None:
            return ServiceResult.failure("Receiver not found", error_code="NOT_FOUND")

        image_result = cls.resolve_image(image)
        if not image_result:
            return image_result

        reply_result = cls._resolve_reply(
            reply_to, receiver_pair=(sender.id, receiver.id)
        )
        if not reply_result:
            return reply_result

        receiver_online = presence.is_online(receiver.id)

        with cls.atomic():
            message = Message.objects.create(
                sender=sender,
                receiver=receiver,
                text=text,
                image=image_result.data,
                reply_to=reply_result.data,
            )
            if receiver_online:
                message.deliver()
                message.save(update_fields=["status", "updated_at"])
            else:
                UnreadService.increment([receiver.id], str(sender.id))

        message = _message_queryset().get(id=message.id)
        payload = message_payload(message)
        outcome = Outcome(message)

        if receiver_online:
            outcome.emit(EventName.NEW_MESSAGE, payload, ToUser(receiver.id))
            outcome.emit(
                EventName.RECENT_CHAT,
                {"partnerId": sender.id, "lastMessage": payload},
                ToUser(receiver.id),
            )
            outcome.emit(
                EventName.UNREAD_COUNT,
                {
                    "chatId": sender.id,
                    "unreadCount": UnreadService.get(receiver.id, str(sender.id)),
                },
                ToUser(receiver.id),
            )
        else:
            outcome.add(
                PushNotification(
                    user_id=receiver.id,
                    title=sender.display_name,
                    body=push_preview(text),
                    data={
                        "type": "new_message",
                        "senderId": str(sender.id),
                        "chatId": str(receiver.id),
                        "messageId": str(message.id),
                    },
                )
            )

        outcome.emit(
            EventName.MESSAGE_STATUS,
            {"messageId": message.id, "status": message.status},
            ToSelf(),
        )
        outcome.emit(
            EventName.RECENT_CHAT,
            {"partnerId": receiver.id, "lastMessage": payload},
            ToSelf(),
        )

        cls.get_logger().debug(
            f"User {sender.id} sent message {message.id} to {receiver.id} "
            f"[{message.status}]"
        )
        return ServiceResult.success(outcome)

    @classmethod
    def send_group(
        cls,
        sender: User,
        group_id,
        text: str | None = None,
        image: str | None = None,
        reply_to=None,
        *,
        presence: PresenceRegistry,
    ) -> ServiceResult[Outcome[Message]]:
        """
        Send a message to a group.

        With M other members of which K are online this produces K
        ``newGroupMessage`` events, M-K unread increments and push
        notifications, and exactly one ``recentGroupUpdated`` room broadcast.
        Status is "delivered" iff K > 0.

        Error codes:
            VALIDATION_ERROR: group id or content missing
            NOT_FOUND: group does not exist
            NOT_MEMBER: sender is not a member
            TEXT_TOO_LONG / INVALID_IMAGE / INVALID_REPLY: as for direct
        """
        group_id = coerce_id(group_id)
        prepared = cls._prepare_content(text, image)
        if not prepared:
            return prepared
        text, image = prepared.data

        if group_id is None or not (text or image):
            return ServiceResult.failure(
                "Group ID and message content are required",
                error_code="VALIDATION_ERROR",
            )

        group = Group.objects.filter(id=group_id).first()
        if group is None:
            return ServiceResult.failure("Group not found", error_code="NOT_FOUND")

        member_ids = group.member_ids()
        if sender.id not in member_ids:
            return ServiceResult.failure(
                "Not authorized for this group", error_code="NOT_MEMBER"
            )

        image_result = cls.resolve_image(image)
        if not image_result:
            return image_result

        reply_result = cls._resolve_reply(reply_to, group_id=group.id)
        if not reply_result:
            return reply_result

        others = [uid for uid in member_ids if uid != sender.id]
        online = presence.filter_online(others)
        offline = [uid for uid in others if uid not in online]
        key = group_key(group.id)

        with cls.atomic():
            message = Message.objects.create(
                sender=sender,
                group=group,
                text=text,
                image=image_result.data,
                reply_to=reply_result.data,
            )
            if online:
                message.deliver()
                message.save(update_fields=["status", "updated_at"])
            UnreadService.increment(offline, key)

        message = _message_queryset().get(id=message.id)
        payload = message_payload(message)
        outcome = Outcome(message)

        counts = UnreadService.counts_for(sorted(online), key)
        for user_id in sorted(online):
            outcome.emit(
                EventName.NEW_GROUP_MESSAGE,
                message_payload(message, status=MessageStatus.DELIVERED),
                ToUser(user_id),
            )
            outcome.emit(
                EventName.GROUP_UNREAD_COUNT,
                {"groupId": group.id, "unreadCount": counts[user_id]},
                ToUser(user_id),
            )

        for user_id in offline:
            outcome.add(
                PushNotification(
                    user_id=user_id,
                    title=f"{sender.display_name} in {group.name}",
                    body=push_preview(text),
                    data={
                        "type": "new_group_message",
                        "groupId": str(group.id),
                        "groupName": group.name,
                        "messageId": str(message.id),
                    },
                )
            )

        outcome.emit(
            EventName.GROUP_MESSAGE_STATUS,
            {"messageId": message.id, "groupId": group.id, "status": message.status},
            ToSelf(),
        )
        outcome.emit(
            EventName.RECENT_GROUP,
            {"groupId": group.id, "lastMessage": payload},
            ToRoom(group.id),
        )

        cls.get_logger().debug(
            f"User {sender.id} sent message {message.id} to group {group.id}: "
            f"{len(online)} online, {len(offline)} offline"
        )
        return ServiceResult.success(outcome)


# =============================================================================
# Reconciliation
# =============================================================================


class ReconciliationService(BaseService):
    """
    Promotes messages left in "sent" to "delivered" when a recipient connects.

    Each original sender that is online receives one bulk update listing
    all of their affected message ids. Replaying finds nothing left in
    "sent" and emits nothing.
    """

    @classmethod
    def _promote(cls, queryset) -> dict[int, list[int]]:
        """Lock pending rows, move them forward, group the ids by sender."""
        with cls.atomic():
            pending = list(
                queryset.select_for_update()
                .filter(status=MessageStatus.SENT)
                .order_by("id")
                .values_list("id", "sender_id")
            )
            if not pending:
                return {}
            Message.objects.filter(
                id__in=[message_id for message_id, _ in pending],
                status=MessageStatus.SENT,
            ).update(status=MessageStatus.DELIVERED, updated_at=timezone.now())

        by_sender = defaultdict(list)
        for message_id, sender_id in pending:
            by_sender[sender_id].append(message_id)
        return dict(by_sender)

    @classmethod
    def reconcile_direct(
        cls, user: User, *, presence: PresenceRegistry
    ) -> ServiceResult[Outcome[list[int]]]:
        by_sender = cls._promote(Message.objects.filter(receiver=user))
        outcome = Outcome([mid for ids in by_sender.values() for mid in ids])

        for sender_id, message_ids in by_sender.items():
            if presence.is_online(sender_id):
                outcome.emit(
                    EventName.BULK_MESSAGE_STATUS,
                    {"messageIds": message_ids, "status": MessageStatus.DELIVERED},
                    ToUser(sender_id),
                )

        if outcome.value:
            cls.get_logger().info(
                f"Reconciled {len(outcome.value)} direct messages for user {user.id}"
            )
        return ServiceResult.success(outcome)

    @classmethod
    def reconcile_group(
        cls, user: User, *, presence: PresenceRegistry
    ) -> ServiceResult[Outcome[list[int]]]:
        group_ids = member_group_ids(user.id)
        if not group_ids:
            return ServiceResult.success(Outcome([]))

        by_sender = cls._promote(
            Message.objects.filter(group_id__in=group_ids).exclude(sender=user)
        )
        outcome = Outcome([mid for ids in by_sender.values() for mid in ids])

        for sender_id, message_ids in by_sender.items():
            if presence.is_online(sender_id):
                outcome.emit(
                    EventName.BULK_GROUP_MESSAGE_STATUS,
                    {"messageIds": message_ids, "status": MessageStatus.DELIVERED},
                    ToUser(sender_id),
                )

        if outcome.value:
            cls.get_logger().info(
                f"Reconciled {len(outcome.value)} group messages for user {user.id}"
            )
        return ServiceResult.success(outcome)

    @classmethod
    def reconcile(
        cls, user: User, *, presence: PresenceRegistry
    ) -> ServiceResult[Outcome[list[int]]]:
        """Direct then group reconciliation, merged into one outcome."""
        direct = cls.reconcile_direct(user, presence=presence).data
        group = cls.reconcile_group(user, presence=presence).data
        outcome = Outcome(direct.value + group.value)
        outcome.extend(direct.events).extend(group.events)
        return ServiceResult.success(outcome)


# =============================================================================
# Seen
# =============================================================================


class SeenService(BaseService):
    """Mark-seen for a whole conversation."""

    @classmethod
    def mark_direct_seen(
        cls, user: User, partner_id, *, presence: PresenceRegistry
    ) -> ServiceResult[Outcome[int]]:
        """
        Mark every message from ``partner_id`` to ``user`` as seen.

        The caller always gets an ``unreadCountUpdated`` confirmation; the
        partner gets ``messagesSeen`` only when some message actually changed,
        so a repeated call produces no partner event.

        Error codes:
            VALIDATION_ERROR: partner id missing
        """
        partner_id = coerce_id(partner_id)
        if partner_id is None:
            return ServiceResult.failure(
                "Sender ID is required", error_code="VALIDATION_ERROR"
            )

        with cls.atomic():
            changed = Message.objects.filter(
                sender_id=partner_id,
                receiver=user,
                status__in=[MessageStatus.SENT, MessageStatus.DELIVERED],
            ).update(status=MessageStatus.SEEN, updated_at=timezone.now())
            UnreadService.clear(user.id, str(partner_id))

        outcome = Outcome(changed)
        outcome.emit(
            EventName.UNREAD_COUNT,
            {"chatId": partner_id, "unreadCount": 0},
            ToSelf(),
        )
        if changed and presence.is_online(partner_id):
            outcome.emit(
                EventName.MESSAGES_SEEN,
                {"seenBy": user.id, "senderId": partner_id},
                ToUser(partner_id),
            )
        return ServiceResult.success(outcome)

    @classmethod
    def mark_group_seen(
        cls, user: User, group_id, *, presence: PresenceRegistry
    ) -> ServiceResult[Outcome[int]]:
        """
        Mark every message in a group not authored by ``user`` as seen.

        Error codes:
            VALIDATION_ERROR: group id missing
            NOT_FOUND: group does not exist
            NOT_MEMBER: user is not a member
        """
        group_id = coerce_id(group_id)
        if group_id is None:
            return ServiceResult.failure(
                "Group ID is required", error_code="VALIDATION_ERROR"
            )

        group = Group.objects.filter(id=group_id).first()
        if group is None:
            return ServiceResult.failure("Group not found", error_code="NOT_FOUND")

        member_ids = group.member_ids()
        if user.id not in member_ids:
            return ServiceResult.failure(
                "Not authorized for this group", error_code="NOT_MEMBER"
            )

        with cls.atomic():
            changed = (
                Message.objects.filter(
                    group=group,
                    status__in=[MessageStatus.SENT, MessageStatus.DELIVERED],
                )
                .exclude(sender=user)
                .update(status=MessageStatus.SEEN, updated_at=timezone.now())
            )
            UnreadService.clear(user.id, group.conversation_key)

        outcome = Outcome(changed)
        outcome.emit(
            EventName.GROUP_UNREAD_COUNT,
            {"groupId": group.id, "unreadCount": 0},
            ToSelf(),
        )
        if changed:
            others = [uid for uid in member_ids if uid != user.id]
            for member_id in sorted(presence.filter_online(others)):
                outcome.emit(
                    EventName.GROUP_MESSAGES_SEEN,
                    {"groupId": group.id, "seenBy": user.id},
                    ToUser(member_id),
                )
        return ServiceResult.success(outcome)


# =============================================================================
# Pins
# =============================================================================


def _check_target(user: User, message: Message, target: ConversationTarget) -> ServiceResult | None:
    """Failure when the message is not part of the target conversation."""
    if isinstance(target, GroupTarget):
        if message.group_id != target.group_id:
            return ServiceResult.failure(
                "Message does not belong to this conversation",
                error_code="CONTEXT_MISMATCH",
            )
        if not GroupMember.objects.filter(group_id=target.group_id, user=user).exists():
            return ServiceResult.failure(
                "Not authorized for this group", error_code="NOT_MEMBER"
            )
        return None

    if message.group_id is not None or {message.sender_id, message.receiver_id} != {
        user.id,
        target.partner_id,
    }:
        return ServiceResult.failure(
            "Message does not belong to this conversation",
            error_code="CONTEXT_MISMATCH",
        )
    return None


def _context_payload(target: ConversationTarget) -> dict:
    if isinstance(target, GroupTarget):
        return {"groupId": target.group_id}
    return {"chatPartnerId": target.partner_id}


class PinService(BaseService):
    """
    Per-user pinned messages.

    Pins belong to the user who made them, in both direct and group
    conversations. Pinning twice or unpinning a message that is not pinned
    is a successful no-op.
    """

    @classmethod
    def _load(cls, user: User, message_id, target: ConversationTarget | None):
        if target is None:
            return ServiceResult.failure(
                "Chat partner ID or group ID is required",
                error_code="MISSING_CONTEXT",
            )
        message_id = coerce_id(message_id)
        message = _message_queryset().filter(id=message_id).first() if message_id else None
        if message is None:
            return ServiceResult.failure("Message not found", error_code="NOT_FOUND")
        mismatch = _check_target(user, message, target)
        if mismatch:
            return mismatch
        return ServiceResult.success(message)

    @classmethod
    def pin(
        cls, user: User, message_id, target: ConversationTarget | None
    ) -> ServiceResult[Outcome[PinnedMessage]]:
        """
        Error codes:
            MISSING_CONTEXT: neither chat partner nor group supplied
            NOT_FOUND: message does not exist
            CONTEXT_MISMATCH / NOT_MEMBER: message not in the caller's conversation
            MESSAGE_DELETED: message was deleted for everyone
        """
        loaded = cls._load(user, message_id, target)
        if not loaded:
            return loaded
        message = loaded.data

        if message.deleted_for_everyone:
            return ServiceResult.failure(
                "Cannot pin a deleted message", error_code="MESSAGE_DELETED"
            )

        pin, created = PinnedMessage.objects.get_or_create(
            user=user, message=message, context_key=target.key
        )
        if created:
            cls.get_logger().debug(f"User {user.id} pinned message {message.id}")

        outcome = Outcome(pin)
        outcome.emit(
            EventName.MESSAGE_PINNED,
            {
                "messageId": message.id,
                **_context_payload(target),
                "message": message_payload(message),
            },
            ToSelf(),
        )
        return ServiceResult.success(outcome)

    @classmethod
    def unpin(
        cls, user: User, message_id, target: ConversationTarget | None
    ) -> ServiceResult[Outcome[int]]:
        loaded = cls._load(user, message_id, target)
        if not loaded:
            return loaded
        message = loaded.data

        removed, _ = PinnedMessage.objects.filter(
            user=user, message=message, context_key=target.key
        ).delete()

        outcome = Outcome(removed)
        outcome.emit(
            EventName.MESSAGE_UNPINNED,
            {"messageId": message.id, **_context_payload(target)},
            ToSelf(),
        )
        return ServiceResult.success(outcome)

    @classmethod
    def list_pins(cls, user: User, target: ConversationTarget | None = None):
        pins = PinnedMessage.objects.filter(user=user).select_related(
            "message__sender", "message__reply_to"
        )
        if target is not None:
            pins = pins.filter(context_key=target.key)
        return pins


# =============================================================================
# Edit / delete
# =============================================================================


class DeleteType:
    ME = "me"
    EVERYONE = "everyone"


class MessageActionService(BaseService):
    """
    Edit and delete actions on existing messages.

    Broadcast rule: direct-message changes go to the other participant if
    online, group-message changes go to the group room; the acting
    connection is always told.
    """

    @classmethod
    def _audience(cls, message: Message, actor: User) -> list:
        if message.group_id is not None:
            return [ToRoom(message.group_id, exclude_user_id=actor.id), ToSelf()]
        other_id = message.receiver_id if message.sender_id == actor.id else message.sender_id
        if other_id == actor.id:
            # Note to self: the partner is the acting connection
            return [ToSelf()]
        return [ToUser(other_id), ToSelf()]

    @classmethod
    def _get_message(cls, user: User, message_id) -> ServiceResult[Message]:
        message_id = coerce_id(message_id)
        message = _message_queryset().filter(id=message_id).first() if message_id else None
        if message is None or not _can_access(user.id, message):
            return ServiceResult.failure("Message not found", error_code="NOT_FOUND")
        return ServiceResult.success(message)

    @classmethod
    def edit(cls, user: User, message_id, new_text) -> ServiceResult[Outcome[Message]]:
        """
        Replace the text of a message.

        Error codes:
            VALIDATION_ERROR: new text empty
            TEXT_TOO_LONG: new text over the maximum length
            NOT_FOUND: message missing or not visible to the user
            PERMISSION_DENIED: user is not the sender
            MESSAGE_DELETED: message was deleted for everyone
        """
        new_text = new_text.strip() if isinstance(new_text, str) else ""
        if not new_text:
            return ServiceResult.failure(
                "New text cannot be empty", error_code="VALIDATION_ERROR"
            )
        if len(new_text) > MESSAGE_CONFIG.MAX_TEXT_LENGTH:
            return ServiceResult.failure(
                f"Message text cannot exceed {MESSAGE_CONFIG.MAX_TEXT_LENGTH} characters",
                error_code="TEXT_TOO_LONG",
            )

        loaded = cls._get_message(user, message_id)
        if not loaded:
            return loaded
        message = loaded.data

        if message.sender_id != user.id:
            return ServiceResult.failure(
                "You can only edit your own messages", error_code="PERMISSION_DENIED"
            )
        if message.deleted_for_everyone:
            return ServiceResult.failure(
                "Cannot edit a deleted message", error_code="MESSAGE_DELETED"
            )

        message.text = new_text
        message.edited = True
        message.edited_at = timezone.now()
        message.save(update_fields=["text", "edited", "edited_at", "updated_at"])

        payload = {
            "messageId": message.id,
            "newText": new_text,
            "editedAt": message.edited_at.isoformat(),
        }
        if message.group_id is not None:
            payload["groupId"] = message.group_id

        outcome = Outcome(message)
        for target in cls._audience(message, user):
            outcome.emit(EventName.MESSAGE_EDITED, payload, target)

        cls.get_logger().debug(f"User {user.id} edited message {message.id}")
        return ServiceResult.success(outcome)

    @classmethod
    def delete(
        cls, user: User, message_id, delete_type
    ) -> ServiceResult[Outcome[Message]]:
        """
        Delete a message for the caller only or for everyone.

        Error codes:
            INVALID_DELETE_TYPE: delete type is neither "me" nor "everyone"
            NOT_FOUND: message missing or not visible to the user
            PERMISSION_DENIED: "everyone" by someone other than the sender
                or a group admin
        """
        if delete_type not in (DeleteType.ME, DeleteType.EVERYONE):
            return ServiceResult.failure(
                "Invalid delete type", error_code="INVALID_DELETE_TYPE"
            )

        loaded = cls._get_message(user, message_id)
        if not loaded:
            return loaded
        message = loaded.data

        if delete_type == DeleteType.ME:
            return cls._delete_for_me(user, message)
        return cls._delete_for_everyone(user, message)

    @classmethod
    def _delete_for_me(cls, user: User, message: Message) -> ServiceResult[Outcome[Message]]:
        with cls.atomic():
            message.hidden_for.add(user)
            PinnedMessage.objects.filter(user=user, message=message).delete()

        outcome = Outcome(message)
        outcome.emit(
            EventName.MESSAGE_DELETED,
            {"messageId": message.id, "deleteType": DeleteType.ME},
            ToSelf(),
        )
        return ServiceResult.success(outcome)

    @classmethod
    def _delete_for_everyone(
        cls, user: User, message: Message
    ) -> ServiceResult[Outcome[Message]]:
        is_sender = message.sender_id == user.id
        is_group_admin = message.group_id is not None and GroupMember.objects.filter(
            group_id=message.group_id, user=user, role=GroupRole.ADMIN
        ).exists()
        if not (is_sender or is_group_admin):
            return ServiceResult.failure("Not authorized", error_code="PERMISSION_DENIED")

        with cls.atomic():
            message.text = MESSAGE_CONFIG.TOMBSTONE_TEXT
            message.image = ""
            message.deleted_for_everyone = True
            message.deleted_by = user
            message.save(
                update_fields=[
                    "text",
                    "image",
                    "deleted_for_everyone",
                    "deleted_by",
                    "updated_at",
                ]
            )
            unpinned, _ = PinnedMessage.objects.filter(message=message).delete()

        payload = {
            "messageId": message.id,
            "deleteType": DeleteType.EVERYONE,
            "text": message.text,
            "deletedForEveryone": True,
        }
        if message.group_id is not None:
            payload["groupId"] = message.group_id

        outcome = Outcome(message)
        for target in cls._audience(message, user):
            outcome.emit(EventName.MESSAGE_DELETED, payload, target)

        cls.get_logger().info(
            f"User {user.id} deleted message {message.id} for everyone "
            f"({unpinned} pins removed)"
        )
        return ServiceResult.success(outcome)


# =============================================================================
# Typing
# =============================================================================


class TypingService(BaseService):
    """Typing indicators. Nothing is persisted."""

    @classmethod
    def notify(cls, user: User, receiver_id, stop: bool = False) -> ServiceResult[Outcome]:
        receiver_id = coerce_id(receiver_id)
        if receiver_id is None:
            return ServiceResult.failure(
                "Receiver ID is required", error_code="VALIDATION_ERROR"
            )
        outcome = Outcome(receiver_id)
        outcome.emit(
            EventName.STOP_TYPING if stop else EventName.TYPING,
            {"senderId": user.id},
            ToUser(receiver_id),
        )
        return ServiceResult.success(outcome)


# =============================================================================
# Search
# =============================================================================


class SearchService(BaseService):
    """Case-insensitive text search over the messages a user can see."""

    @classmethod
    def visible_messages(cls, user: User):
        return (
            Message.objects.filter(
                Q(sender=user, group__isnull=True)
                | Q(receiver=user)
                | Q(group_id__in=member_group_ids(user.id))
            )
            .exclude(hidden_for=user)
            .exclude(deleted_for_everyone=True)
        )

    @classmethod
    def search(cls, user: User, query) -> ServiceResult[list[Message]]:
        """
        Error codes:
            VALIDATION_ERROR: query empty
        """
        query = query.strip() if isinstance(query, str) else ""
        if not query:
            return ServiceResult.failure(
                "Search query is required", error_code="VALIDATION_ERROR"
            )

        results = list(
            cls.visible_messages(user)
            .filter(text__icontains=query)
            .select_related("sender", "reply_to")
            .order_by("-created_at", "-id")[: MESSAGE_CONFIG.SEARCH_MAX_RESULTS]
        )
        return ServiceResult.success(results)


# =============================================================================
# History
# =============================================================================


class HistoryService(BaseService):
    """
    Read side of conversations: message history, recent chats and the group
    timeline.

    History querysets are returned unordered; the cursor paginators in
    chat/pagination.py apply the ordering.
    """

    @classmethod
    def _member_group(cls, user: User, group_id) -> ServiceResult[Group]:
        group_id = coerce_id(group_id)
        group = _group_with_members(group_id) if group_id else None
        if group is None:
            return ServiceResult.failure("Group not found", error_code="NOT_FOUND")
        if not any(m.user_id == user.id for m in group.memberships.all()):
            return ServiceResult.failure(
                "Not authorized for this group", error_code="NOT_MEMBER"
            )
        return ServiceResult.success(group)

    @classmethod
    def direct_history(cls, user: User, partner_id):
        """
        Messages exchanged with one partner, minus those the user deleted
        for themselves. Messages deleted for everyone keep their tombstone.

        Error codes:
            NOT_FOUND: partner does not exist
        """
        partner_id = coerce_id(partner_id)
        if partner_id is None or not User.objects.filter(id=partner_id).exists():
            return ServiceResult.failure("User not found", error_code="NOT_FOUND")

        return ServiceResult.success(
            _message_queryset()
            .filter(
                Q(sender=user, receiver_id=partner_id)
                | Q(sender_id=partner_id, receiver=user)
            )
            .exclude(hidden_for=user)
        )

    @classmethod
    def group_history(cls, user: User, group_id):
        """
        Error codes:
            NOT_FOUND: group does not exist
            NOT_MEMBER: user is not a member
        """
        loaded = cls._member_group(user, group_id)
        if not loaded:
            return loaded
        return ServiceResult.success(
            _message_queryset().filter(group=loaded.data).exclude(hidden_for=user)
        )

    @classmethod
    def group_detail(cls, user: User, group_id) -> ServiceResult[Group]:
        return cls._member_group(user, group_id)

    @classmethod
    def group_events(cls, user: User, group_id):
        loaded = cls._member_group(user, group_id)
        if not loaded:
            return loaded
        return ServiceResult.success(GroupEvent.objects.filter(group=loaded.data))

    @classmethod
    def chat_partners(cls, user: User):
        """
        Users the current user has a direct conversation with.

        Each user is annotated with ``last_message_at`` and
        ``last_message_id`` of the newest message the current user can
        still see; conversations the user hid entirely drop out.
        """
        conversation = (
            Message.objects.filter(
                Q(sender=user, receiver=OuterRef("pk"))
                | Q(sender=OuterRef("pk"), receiver=user)
            )
            .exclude(hidden_for=user)
            .order_by("-created_at", "-id")
        )
        return User.objects.annotate(
            last_message_at=Subquery(conversation.values("created_at")[:1]),
            last_message_id=Subquery(conversation.values("id")[:1]),
        ).filter(last_message_at__isnull=False)

    @classmethod
    def partner_context(cls, user: User, partners) -> dict:
        """Last messages and unread counts for one page of chat partners."""
        partners = list(partners)
        messages = _message_queryset().in_bulk([p.last_message_id for p in partners])
        unread = dict(
            UnreadCounter.objects.filter(
                user=user, conversation_key__in=[str(p.id) for p in partners]
            ).values_list("conversation_key", "count")
        )
        return {"messages": messages, "unread": unread}


# =============================================================================
# Stars
# =============================================================================


class StarService(BaseService):
    """Starred messages and chats, both per user toggles."""

    @classmethod
    def toggle_message(cls, user: User, message_id) -> ServiceResult[dict]:
        message_id = coerce_id(message_id)
        message = Message.objects.filter(id=message_id).first() if message_id else None
        if message is None or not _can_access(user.id, message):
            return ServiceResult.failure("Message not found", error_code="NOT_FOUND")

        deleted, _ = StarredMessage.objects.filter(user=user, message=message).delete()
        if not deleted:
            StarredMessage.objects.create(user=user, message=message)
        return ServiceResult.success({"messageId": message.id, "starred": not deleted})

    @classmethod
    def toggle_chat(cls, user: User, target: ConversationTarget) -> ServiceResult[dict]:
        if isinstance(target, GroupTarget):
            if not GroupMember.objects.filter(group_id=target.group_id, user=user).exists():
                return ServiceResult.failure(
                    "Not authorized for this group", error_code="NOT_MEMBER"
                )
        elif not User.objects.filter(id=target.partner_id).exists():
            return ServiceResult.failure("User not found", error_code="NOT_FOUND")

        deleted, _ = StarredChat.objects.filter(
            user=user, conversation_key=target.key
        ).delete()
        if not deleted:
            StarredChat.objects.create(user=user, conversation_key=target.key)
        return ServiceResult.success({"chatKey": target.key, "starred": not deleted})

    @classmethod
    def starred_messages(cls, user: User):
        return (
            Message.objects.filter(stars__user=user)
            .exclude(hidden_for=user)
            .select_related("sender", "reply_to")
            .order_by("-stars__created_at")
        )


# =============================================================================
# Group lifecycle
# =============================================================================


def _group_with_members(group_id) -> Group | None:
    return Group.objects.prefetch_related("memberships").filter(id=group_id).first()


def _group_event(
    group: Group, event_type: str, actor: User, target=None, **data
) -> GroupEvent:
    return GroupEvent(
        group=group,
        event_type=event_type,
        actor=actor,
        actor_name=actor.display_name,
        target_user=target,
        target_name=target.display_name if target is not None else "",
        data=data,
    )


class GroupService(BaseService):
    """
    Group lifecycle with membership broadcasts.

    Methods:
        create: New group, creator becomes admin
        update: Name/description/image (admin only)
        delete: Remove group and its messages (admin only)
        add_members: Admin adds users
        remove_member: Admin removes a non-admin member
        promote: Admin makes a member admin
        leave: Member leaves (the only admin cannot)

    Every change except delete is recorded as a GroupEvent in the same
    transaction, so the timeline matches the membership state.

    Online members added to a group are subscribed to its room; removed
    members are forcibly unsubscribed before the room hears about it.
    """

    @classmethod
    def _admin_group(cls, actor: User, group_id) -> ServiceResult[Group]:
        group = _group_with_members(coerce_id(group_id))
        if group is None:
            return ServiceResult.failure("Group not found", error_code="NOT_FOUND")
        if not group.is_admin(actor.id):
            return ServiceResult.failure(
                "Only group admins can perform this action",
                error_code="PERMISSION_DENIED",
            )
        return ServiceResult.success(group)

    @classmethod
    def _existing_user_ids(cls, user_ids) -> ServiceResult[list[int]]:
        user_ids = list(dict.fromkeys(user_ids))
        found = set(User.objects.filter(id__in=user_ids).values_list("id", flat=True))
        missing = [uid for uid in user_ids if uid not in found]
        if missing:
            return ServiceResult.failure(
                "One or more users not found",
                error_code="NOT_FOUND",
                errors={"userIds": [str(uid) for uid in missing]},
            )
        return ServiceResult.success(user_ids)

    @classmethod
    def create(
        cls,
        creator: User,
        name: str,
        member_ids=(),
        description: str = "",
        image: str = "",
    ) -> ServiceResult[Outcome[Group]]:
        """
        Error codes:
            VALIDATION_ERROR: name missing
            NOT_FOUND: a member id does not exist
            INVALID_IMAGE: inline image cannot be decoded
        """
        invalid = cls.validate_required(name=name)
        if invalid:
            return invalid

        existing = cls._existing_user_ids(uid for uid in member_ids if uid != creator.id)
        if not existing:
            return existing

        if image:
            image_result = DeliveryService.resolve_image(image)
            if not image_result:
                return image_result
            image = image_result.data

        with cls.atomic():
            group = Group.objects.create(
                name=name.strip(),
                description=description or "",
                image=image or "",
                created_by=creator,
            )
            GroupMember.objects.create(group=group, user=creator, role=GroupRole.ADMIN)
            GroupMember.objects.bulk_create(
                GroupMember(group=group, user_id=uid, role=GroupRole.MEMBER)
                for uid in existing.data
            )
            _group_event(
                group,
                GroupEventType.GROUP_CREATED,
                creator,
                name=group.name,
                memberIds=existing.data,
            ).save()

        group = _group_with_members(group.id)
        payload = group_payload(group)
        outcome = Outcome(group)
        outcome.add(Subscribe(group.id, creator.id))
        for user_id in existing.data:
            outcome.add(Subscribe(group.id, user_id))
            outcome.emit(EventName.ADDED_TO_GROUP, {"group": payload}, ToUser(user_id))

        cls.get_logger().info(
            f"User {creator.id} created group {group.id} with {len(existing.data) + 1} members"
        )
        return ServiceResult.success(outcome)

    @classmethod
    def update(cls, actor: User, group_id, **changes) -> ServiceResult[Outcome[Group]]:
        loaded = cls._admin_group(actor, group_id)
        if not loaded:
            return loaded
        group = loaded.data

        if changes.get("image"):
            image_result = DeliveryService.resolve_image(changes["image"])
            if not image_result:
                return image_result
            changes["image"] = image_result.data

        fields = [f for f in ("name", "description", "image") if f in changes]
        for field_name in fields:
            setattr(group, field_name, changes[field_name])
        with cls.atomic():
            group.save(update_fields=[*fields, "updated_at"])
            _group_event(group, GroupEventType.GROUP_UPDATED, actor, fields=fields).save()

        outcome = Outcome(group)
        outcome.emit(EventName.GROUP_UPDATED, group_payload(group), ToRoom(group.id))
        return ServiceResult.success(outcome)

    @classmethod
    def delete(cls, actor: User, group_id) -> ServiceResult[Outcome[int]]:
        loaded = cls._admin_group(actor, group_id)
        if not loaded:
            return loaded
        group = loaded.data
        gid = group.id
        member_ids = group.member_ids()

        with cls.atomic():
            group.delete()
            UnreadCounter.objects.filter(conversation_key=group_key(gid)).delete()
            StarredChat.objects.filter(conversation_key=group_key(gid)).delete()

        outcome = Outcome(gid)
        outcome.emit(EventName.GROUP_DELETED, {"groupId": gid}, ToRoom(gid))
        outcome.extend(Unsubscribe(gid, uid) for uid in member_ids)

        cls.get_logger().info(f"User {actor.id} deleted group {gid}")
        return ServiceResult.success(outcome)

    @classmethod
    def add_members(cls, actor: User, group_id, user_ids) -> ServiceResult[Outcome[Group]]:
        """
        Error codes:
            NOT_FOUND: group or a user does not exist
            PERMISSION_DENIED: actor is not an admin
            ALREADY_MEMBERS: every user is already a member
        """
        loaded = cls._admin_group(actor, group_id)
        if not loaded:
            return loaded
        group = loaded.data

        existing = cls._existing_user_ids(user_ids)
        if not existing:
            return existing

        current = set(group.member_ids())
        new_ids = [uid for uid in existing.data if uid not in current]
        if not new_ids:
            return ServiceResult.failure(
                "All users are already in group", error_code="ALREADY_MEMBERS"
            )

        with cls.atomic():
            GroupMember.objects.bulk_create(
                GroupMember(group=group, user_id=uid, role=GroupRole.MEMBER)
                for uid in new_ids
            )
            GroupEvent.objects.bulk_create(
                _group_event(group, GroupEventType.MEMBER_JOINED, actor, target=member)
                for member in User.objects.filter(id__in=new_ids).order_by("id")
            )

        group = _group_with_members(group.id)
        payload = group_payload(group)
        outcome = Outcome(group)
        outcome.emit(
            EventName.MEMBER_ADDED,
            {"groupId": group.id, "memberIds": new_ids, "group": payload},
            ToRoom(group.id),
        )
        for user_id in new_ids:
            outcome.add(Subscribe(group.id, user_id))
            outcome.emit(EventName.ADDED_TO_GROUP, {"group": payload}, ToUser(user_id))
        return ServiceResult.success(outcome)

    @classmethod
    def remove_member(cls, actor: User, group_id, user_id) -> ServiceResult[Outcome[Group]]:
        """
        Error codes:
            NOT_FOUND: group does not exist
            PERMISSION_DENIED: actor is not an admin, or target is an admin
            NOT_MEMBER: target is not a member
            VALIDATION_ERROR: actor tried to remove themselves
        """
        loaded = cls._admin_group(actor, group_id)
        if not loaded:
            return loaded
        group = loaded.data

        user_id = coerce_id(user_id)
        if user_id == actor.id:
            return ServiceResult.failure(
                "Use leave to exit the group", error_code="VALIDATION_ERROR"
            )

        membership = (
            GroupMember.objects.select_related("user")
            .filter(group=group, user_id=user_id)
            .first()
        )
        if membership is None:
            return ServiceResult.failure(
                "User is not a member of this group", error_code="NOT_MEMBER"
            )
        if membership.is_admin:
            return ServiceResult.failure(
                "Cannot remove another admin", error_code="PERMISSION_DENIED"
            )

        with cls.atomic():
            membership.delete()
            UnreadCounter.objects.filter(
                user_id=user_id, conversation_key=group.conversation_key
            ).delete()
            PinnedMessage.objects.filter(
                user_id=user_id, context_key=group.conversation_key
            ).delete()
            _group_event(
                group, GroupEventType.MEMBER_REMOVED, actor, target=membership.user
            ).save()

        outcome = Outcome(group)
        outcome.extend(removal_effects(group.id, user_id))
        outcome.emit(
            EventName.MEMBER_REMOVED,
            {"groupId": group.id, "removedMemberId": user_id},
            ToRoom(group.id),
        )
        cls.get_logger().info(
            f"User {actor.id} removed user {user_id} from group {group.id}"
        )
        return ServiceResult.success(outcome)

    @classmethod
    def promote(cls, actor: User, group_id, user_id) -> ServiceResult[Outcome[Group]]:
        loaded = cls._admin_group(actor, group_id)
        if not loaded:
            return loaded
        group = loaded.data

        user_id = coerce_id(user_id)
        membership = (
            GroupMember.objects.select_related("user")
            .filter(group=group, user_id=user_id)
            .first()
        )
        if membership is None:
            return ServiceResult.failure(
                "User is not a member of this group", error_code="NOT_MEMBER"
            )

        with cls.atomic():
            GroupMember.objects.filter(pk=membership.pk).update(
                role=GroupRole.ADMIN, updated_at=timezone.now()
            )
            _group_event(
                group, GroupEventType.ADMIN_PROMOTED, actor, target=membership.user
            ).save()

        outcome = Outcome(group)
        outcome.emit(
            EventName.MEMBER_PROMOTED,
            {"groupId": group.id, "newAdminId": user_id, "admins": group.admin_ids()},
            ToRoom(group.id),
        )
        return ServiceResult.success(outcome)

    @classmethod
    def leave(cls, user: User, group_id) -> ServiceResult[Outcome[int]]:
        """
        Error codes:
            NOT_FOUND: group does not exist
            NOT_MEMBER: user is not a member
            LAST_ADMIN: user is the only admin of the group
        """
        group = Group.objects.filter(id=coerce_id(group_id)).first()
        if group is None:
            return ServiceResult.failure("Group not found", error_code="NOT_FOUND")

        membership = GroupMember.objects.filter(group=group, user=user).first()
        if membership is None:
            return ServiceResult.failure(
                "You are not a member of this group", error_code="NOT_MEMBER"
            )
        if membership.is_admin and len(group.admin_ids()) == 1:
            return ServiceResult.failure(
                "Assign another admin before leaving the group",
                error_code="LAST_ADMIN",
            )

        with cls.atomic():
            membership.delete()
            UnreadCounter.objects.filter(
                user=user, conversation_key=group.conversation_key
            ).delete()
            _group_event(group, GroupEventType.MEMBER_LEFT, user).save()

        outcome = Outcome(group.id)
        outcome.add(Unsubscribe(group.id, user.id))
        outcome.emit(EventName.LEFT_ROOM, {"groupId": group.id}, ToSelf())
        outcome.emit(
            EventName.MEMBER_LEFT,
            {"groupId": group.id, "userId": user.id},
            ToRoom(group.id),
        )
        return ServiceResult.success(outcome)
