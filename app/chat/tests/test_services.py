"""
Tests for chat services.

Services return an Outcome whose events describe who is told what, so
routing is asserted directly on the effect list without a live socket.

Test Organization:
    - One class per service
    - Scenario tests (offline recipient reconnecting, group fan-out)
      exercise several services in sequence
"""

import base64

import pytest

from chat.constants import MESSAGE_CONFIG
from chat.events import (
    EventName,
    PushNotification,
    Subscribe,
    ToRoom,
    ToSelf,
    ToUser,
    Unsubscribe,
)
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
from chat.services import (
    DeleteType,
    DeliveryService,
    GroupService,
    HistoryService,
    MessageActionService,
    PinService,
    ReconciliationService,
    SearchService,
    SeenService,
    StarService,
    TypingService,
    UnreadService,
    push_preview,
)
from chat.targets import DirectTarget, GroupTarget
from chat.tests.factories import (
    DirectMessageFactory,
    GroupFactory,
    GroupMessageFactory,
    PinnedMessageFactory,
)


def targets_of(outcome, name):
    return [event.target for event in outcome.named(name)]


# =============================================================================
# Unread counters
# =============================================================================


@pytest.mark.django_db
class TestUnreadService:
    def test_increment_creates_and_counts(self, alice, bob):
        UnreadService.increment([bob.id], str(alice.id))
        UnreadService.increment([bob.id], str(alice.id))

        assert UnreadService.get(bob.id, str(alice.id)) == 2

    def test_increment_several_users(self, alice, bob, carol):
        UnreadService.increment([alice.id, bob.id], "group_1")

        assert UnreadService.counts_for([alice.id, bob.id, carol.id], "group_1") == {
            alice.id: 1,
            bob.id: 1,
            carol.id: 0,
        }

    def test_increment_empty_list_is_noop(self, db):
        UnreadService.increment([], "group_1")

        assert UnreadCounter.objects.count() == 0

    def test_clear_resets_to_zero(self, alice, bob):
        UnreadService.increment([bob.id], str(alice.id))

        UnreadService.clear(bob.id, str(alice.id))

        assert UnreadService.get(bob.id, str(alice.id)) == 0

    def test_get_missing_counter_is_zero(self, alice, bob):
        assert UnreadService.get(bob.id, str(alice.id)) == 0

    def test_all_counts_uses_clean_ids(self, alice, bob):
        UnreadService.increment([bob.id], str(alice.id))
        UnreadService.increment([bob.id], "group_9")
        UnreadService.increment([bob.id], "group_9")
        UnreadService.increment([bob.id], "55")
        UnreadService.clear(bob.id, "55")

        assert UnreadService.all_counts(bob) == {
            str(alice.id): {"count": 1, "isGroup": False},
            "9": {"count": 2, "isGroup": True},
            "55": {"count": 0, "isGroup": False},
        }
        assert "55" not in UnreadService.all_counts(bob, non_zero=True)


class TestPushPreview:
    def test_short_text_unchanged(self):
        assert push_preview("hello") == "hello"

    def test_long_text_truncated(self):
        text = "x" * 80

        assert push_preview(text) == "x" * 50 + "..."

    def test_image_only_uses_photo_label(self):
        assert push_preview("") == "📷 Photo"


# =============================================================================
# Direct delivery
# =============================================================================


@pytest.mark.django_db
class TestSendDirect:
    def test_offline_receiver_stays_sent_and_gets_push(self, alice, bob, presence):
        result = DeliveryService.send_direct(alice, bob.id, "  hi  ", presence=presence)

        assert result.success
        outcome = result.data
        message = outcome.value
        assert message.text == "hi"
        assert message.status == MessageStatus.SENT
        assert UnreadService.get(bob.id, str(alice.id)) == 1

        pushes = outcome.effects_of(PushNotification)
        assert pushes == [
            PushNotification(
                user_id=bob.id,
                title="Alice",
                body="hi",
                data={
                    "type": "new_message",
                    "senderId": str(alice.id),
                    "chatId": str(bob.id),
                    "messageId": str(message.id),
                },
            )
        ]
        assert outcome.named(EventName.NEW_MESSAGE) == []

    def test_offline_receiver_sender_gets_status_and_summary(self, alice, bob, presence):
        outcome = DeliveryService.send_direct(alice, bob.id, "hi", presence=presence).data

        [status_event] = outcome.named(EventName.MESSAGE_STATUS)
        assert status_event.target == ToSelf()
        assert status_event.payload == {
            "messageId": outcome.value.id,
            "status": MessageStatus.SENT,
        }
        [recent] = outcome.named(EventName.RECENT_CHAT)
        assert recent.target == ToSelf()
        assert recent.payload["partnerId"] == bob.id

    def test_online_receiver_is_delivered(self, alice, bob, presence, online):
        online(bob)

        outcome = DeliveryService.send_direct(alice, bob.id, "hi", presence=presence).data

        assert outcome.value.status == MessageStatus.DELIVERED
        assert outcome.effects_of(PushNotification) == []
        assert UnreadService.get(bob.id, str(alice.id)) == 0

        [new_message] = outcome.named(EventName.NEW_MESSAGE)
        assert new_message.target == ToUser(bob.id)
        assert new_message.payload["text"] == "hi"
        assert new_message.payload["senderId"] == alice.id
        assert new_message.payload["status"] == MessageStatus.DELIVERED

        assert targets_of(outcome, EventName.RECENT_CHAT) == [ToUser(bob.id), ToSelf()]
        [count] = outcome.named(EventName.UNREAD_COUNT)
        assert count.target == ToUser(bob.id)
        assert count.payload == {"chatId": alice.id, "unreadCount": 0}

        [status_event] = outcome.named(EventName.MESSAGE_STATUS)
        assert status_event.payload["status"] == MessageStatus.DELIVERED

    def test_image_only_message_push_uses_photo_label(self, alice, bob, presence):
        outcome = DeliveryService.send_direct(
            alice, bob.id, image="https://cdn.example.com/p.png", presence=presence
        ).data

        assert outcome.value.text == ""
        assert outcome.value.image == "https://cdn.example.com/p.png"
        [push] = outcome.effects_of(PushNotification)
        assert push.body == "📷 Photo"

    @pytest.mark.parametrize(
        "receiver,text",
        [(None, "hi"), ("", "hi"), ("abc", "hi"), ("self", "   "), ("self", None)],
    )
    def test_missing_receiver_or_content_fails(self, alice, bob, presence, receiver, text):
        receiver_id = bob.id if receiver == "self" else receiver

        result = DeliveryService.send_direct(alice, receiver_id, text, presence=presence)

        assert not result.success
        assert result.error == "Receiver ID and message content are required"
        assert result.error_code == "VALIDATION_ERROR"
        assert Message.objects.count() == 0

    def test_unknown_receiver_fails(self, alice, presence):
        result = DeliveryService.send_direct(alice, 999999, "hi", presence=presence)

        assert result.error_code == "NOT_FOUND"
        assert result.error == "Receiver not found"
        assert Message.objects.count() == 0

    def test_text_too_long_fails(self, alice, bob, presence):
        text = "x" * (MESSAGE_CONFIG.MAX_TEXT_LENGTH + 1)

        result = DeliveryService.send_direct(alice, bob.id, text, presence=presence)

        assert result.error_code == "TEXT_TOO_LONG"
        assert Message.objects.count() == 0
        assert UnreadCounter.objects.count() == 0

    def test_invalid_inline_image_fails_without_writes(self, alice, bob, presence):
        result = DeliveryService.send_direct(
            alice, bob.id, image="data:image/png;base64,@@@", presence=presence
        )

        assert result.error_code == "INVALID_IMAGE"
        assert Message.objects.count() == 0

    def test_markup_declared_as_image_fails_without_writes(self, alice, bob, presence):
        payload = base64.b64encode(b"<script>alert(1)</script>").decode()

        result = DeliveryService.send_direct(
            alice, bob.id, image=f"data:image/html;base64,{payload}", presence=presence
        )

        assert result.error_code == "INVALID_IMAGE"
        assert Message.objects.count() == 0

    @pytest.mark.parametrize(
        "image",
        [
            "https://cdn.example.com/" + "a" * MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH,
            "https://",
        ],
    )
    def test_invalid_image_url_fails_without_writes(self, alice, bob, presence, image):
        result = DeliveryService.send_direct(alice, bob.id, image=image, presence=presence)

        assert result.error_code == "INVALID_IMAGE_URL"
        assert Message.objects.count() == 0
        assert UnreadCounter.objects.count() == 0

    def test_reply_to_message_in_same_chat(self, alice, bob, presence):
        original = DirectMessageFactory(sender=bob, receiver=alice, text="question")

        outcome = DeliveryService.send_direct(
            alice, bob.id, "answer", reply_to=original.id, presence=presence
        ).data

        assert outcome.value.reply_to_id == original.id
        [recent] = outcome.named(EventName.RECENT_CHAT)
        assert recent.payload["lastMessage"]["replyTo"]["text"] == "question"

    def test_reply_to_message_from_other_chat_fails(self, alice, bob, carol, presence):
        foreign = DirectMessageFactory(sender=carol, receiver=bob)

        result = DeliveryService.send_direct(
            alice, bob.id, "answer", reply_to=foreign.id, presence=presence
        )

        assert result.error_code == "INVALID_REPLY"
        assert result.error == "Invalid reply message ID"
        assert Message.objects.count() == 1

    def test_reply_to_missing_message_fails(self, alice, bob, presence):
        result = DeliveryService.send_direct(
            alice, bob.id, "answer", reply_to=424242, presence=presence
        )

        assert result.error_code == "INVALID_REPLY"


@pytest.mark.django_db
class TestOfflineRecipientScenario:
    """
    Alice sends two messages to offline Bob, Bob connects, then reads them.

    Why it matters: this is the full sent -> delivered -> seen path with
    unread bookkeeping and sender feedback at every step.
    """

    def test_full_flow(self, alice, bob, presence, online):
        online(alice)
        first = DeliveryService.send_direct(alice, bob.id, "one", presence=presence).data.value
        second = DeliveryService.send_direct(alice, bob.id, "two", presence=presence).data.value

        assert UnreadService.get(bob.id, str(alice.id)) == 2
        assert {first.status, second.status} == {MessageStatus.SENT}

        online(bob)
        reconciled = ReconciliationService.reconcile(bob, presence=presence).data

        assert sorted(reconciled.value) == [first.id, second.id]
        [bulk] = reconciled.named(EventName.BULK_MESSAGE_STATUS)
        assert bulk.target == ToUser(alice.id)
        assert bulk.payload == {
            "messageIds": [first.id, second.id],
            "status": MessageStatus.DELIVERED,
        }
        # Unread is cleared by reading, not by connecting
        assert UnreadService.get(bob.id, str(alice.id)) == 2

        seen = SeenService.mark_direct_seen(bob, alice.id, presence=presence).data

        assert seen.value == 2
        assert UnreadService.get(bob.id, str(alice.id)) == 0
        assert set(
            Message.objects.filter(sender=alice).values_list("status", flat=True)
        ) == {MessageStatus.SEEN}
        [notice] = seen.named(EventName.MESSAGES_SEEN)
        assert notice.target == ToUser(alice.id)
        assert notice.payload == {"seenBy": bob.id, "senderId": alice.id}


# =============================================================================
# Group delivery
# =============================================================================


@pytest.mark.django_db
class TestSendGroup:
    def test_fan_out_to_online_and_offline_members(
        self, alice, bob, carol, group, presence, online
    ):
        online(bob)

        outcome = DeliveryService.send_group(alice, group.id, "hello", presence=presence).data

        assert outcome.value.status == MessageStatus.DELIVERED
        assert targets_of(outcome, EventName.NEW_GROUP_MESSAGE) == [ToUser(bob.id)]
        [count] = outcome.named(EventName.GROUP_UNREAD_COUNT)
        assert count.target == ToUser(bob.id)
        assert count.payload == {"groupId": group.id, "unreadCount": 0}

        assert UnreadService.get(carol.id, f"group_{group.id}") == 1
        assert UnreadService.get(bob.id, f"group_{group.id}") == 0
        assert UnreadService.get(alice.id, f"group_{group.id}") == 0

        [push] = outcome.effects_of(PushNotification)
        assert push.user_id == carol.id
        assert push.title == "Alice in Team"
        assert push.data["type"] == "new_group_message"
        assert push.data["groupId"] == str(group.id)

        assert targets_of(outcome, EventName.RECENT_GROUP) == [ToRoom(group.id)]
        [status_event] = outcome.named(EventName.GROUP_MESSAGE_STATUS)
        assert status_event.target == ToSelf()
        assert status_event.payload["status"] == MessageStatus.DELIVERED

    def test_no_online_members_stays_sent(self, alice, bob, carol, group, presence):
        outcome = DeliveryService.send_group(alice, group.id, "hello", presence=presence).data

        assert outcome.value.status == MessageStatus.SENT
        assert outcome.named(EventName.NEW_GROUP_MESSAGE) == []
        assert {p.user_id for p in outcome.effects_of(PushNotification)} == {bob.id, carol.id}
        assert len(outcome.named(EventName.RECENT_GROUP)) == 1

    def test_sender_online_does_not_count_as_recipient(self, alice, group, presence, online):
        online(alice)

        outcome = DeliveryService.send_group(alice, group.id, "hello", presence=presence).data

        assert outcome.value.status == MessageStatus.SENT

    def test_non_member_rejected(self, outsider, group, presence):
        result = DeliveryService.send_group(outsider, group.id, "hello", presence=presence)

        assert result.error_code == "NOT_MEMBER"
        assert result.error == "Not authorized for this group"
        assert Message.objects.count() == 0

    def test_unknown_group(self, alice, presence):
        result = DeliveryService.send_group(alice, 999999, "hello", presence=presence)

        assert result.error_code == "NOT_FOUND"

    def test_missing_content(self, alice, group, presence):
        result = DeliveryService.send_group(alice, group.id, "  ", presence=presence)

        assert result.error == "Group ID and message content are required"

    def test_reply_must_belong_to_group(self, alice, bob, group, presence):
        direct = DirectMessageFactory(sender=alice, receiver=bob)

        result = DeliveryService.send_group(
            alice, group.id, "re", reply_to=direct.id, presence=presence
        )

        assert result.error_code == "INVALID_REPLY"


# =============================================================================
# Reconciliation
# =============================================================================


@pytest.mark.django_db
class TestReconciliation:
    def test_one_bulk_update_per_sender(self, alice, bob, carol, presence, online):
        from_alice = [DirectMessageFactory(sender=alice, receiver=bob) for _ in range(2)]
        from_carol = DirectMessageFactory(sender=carol, receiver=bob)
        online(alice)
        online(carol)

        outcome = ReconciliationService.reconcile_direct(bob, presence=presence).data

        bulk = {e.target: e.payload for e in outcome.named(EventName.BULK_MESSAGE_STATUS)}
        assert bulk == {
            ToUser(alice.id): {
                "messageIds": [m.id for m in from_alice],
                "status": MessageStatus.DELIVERED,
            },
            ToUser(carol.id): {
                "messageIds": [from_carol.id],
                "status": MessageStatus.DELIVERED,
            },
        }

    def test_offline_sender_is_promoted_without_event(self, alice, bob, presence):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        outcome = ReconciliationService.reconcile_direct(bob, presence=presence).data

        message.refresh_from_db()
        assert message.status == MessageStatus.DELIVERED
        assert outcome.events == []

    def test_replay_is_idempotent(self, alice, bob, presence, online):
        DirectMessageFactory(sender=alice, receiver=bob)
        online(alice)
        ReconciliationService.reconcile(bob, presence=presence)

        again = ReconciliationService.reconcile(bob, presence=presence).data

        assert again.value == []
        assert again.events == []

    def test_seen_messages_never_move_back(self, alice, bob, presence):
        seen = DirectMessageFactory(sender=alice, receiver=bob, status=MessageStatus.SEEN)

        ReconciliationService.reconcile_direct(bob, presence=presence)

        seen.refresh_from_db()
        assert seen.status == MessageStatus.SEEN

    def test_messages_sent_by_user_are_not_touched(self, alice, bob, presence):
        outgoing = DirectMessageFactory(sender=bob, receiver=alice)

        ReconciliationService.reconcile_direct(bob, presence=presence)

        outgoing.refresh_from_db()
        assert outgoing.status == MessageStatus.SENT

    def test_group_messages_promoted(self, alice, bob, group, presence, online):
        from_alice = GroupMessageFactory(group=group, sender=alice)
        own = GroupMessageFactory(group=group, sender=bob)
        online(alice)

        outcome = ReconciliationService.reconcile_group(bob, presence=presence).data

        from_alice.refresh_from_db()
        own.refresh_from_db()
        assert from_alice.status == MessageStatus.DELIVERED
        assert own.status == MessageStatus.SENT
        [bulk] = outcome.named(EventName.BULK_GROUP_MESSAGE_STATUS)
        assert bulk.target == ToUser(alice.id)
        assert bulk.payload["messageIds"] == [from_alice.id]

    def test_user_without_groups(self, outsider, presence):
        outcome = ReconciliationService.reconcile_group(outsider, presence=presence).data

        assert outcome.value == []


# =============================================================================
# Seen
# =============================================================================


@pytest.mark.django_db
class TestSeen:
    def test_second_mark_seen_emits_no_partner_event(self, alice, bob, presence, online):
        DirectMessageFactory(sender=alice, receiver=bob)
        online(alice)
        SeenService.mark_direct_seen(bob, alice.id, presence=presence)

        again = SeenService.mark_direct_seen(bob, alice.id, presence=presence).data

        assert again.value == 0
        assert again.named(EventName.MESSAGES_SEEN) == []
        [count] = again.named(EventName.UNREAD_COUNT)
        assert count.target == ToSelf()
        assert count.payload == {"chatId": alice.id, "unreadCount": 0}

    def test_offline_partner_gets_no_event(self, alice, bob, presence):
        DirectMessageFactory(sender=alice, receiver=bob)

        outcome = SeenService.mark_direct_seen(bob, alice.id, presence=presence).data

        assert outcome.value == 1
        assert outcome.named(EventName.MESSAGES_SEEN) == []

    def test_only_messages_from_partner_change(self, alice, bob, carol, presence):
        from_carol = DirectMessageFactory(sender=carol, receiver=bob)
        DirectMessageFactory(sender=alice, receiver=bob)

        SeenService.mark_direct_seen(bob, alice.id, presence=presence)

        from_carol.refresh_from_db()
        assert from_carol.status == MessageStatus.SENT

    def test_missing_partner_id(self, bob, presence):
        result = SeenService.mark_direct_seen(bob, None, presence=presence)

        assert result.error == "Sender ID is required"

    def test_group_seen_notifies_online_members(self, alice, bob, carol, group, presence, online):
        GroupMessageFactory(group=group, sender=alice)
        UnreadService.increment([bob.id], group.conversation_key)
        online(alice)
        online(carol)

        outcome = SeenService.mark_group_seen(bob, group.id, presence=presence).data

        assert outcome.value == 1
        assert UnreadService.get(bob.id, group.conversation_key) == 0
        assert targets_of(outcome, EventName.GROUP_MESSAGES_SEEN) == [
            ToUser(alice.id),
            ToUser(carol.id),
        ]
        [count] = outcome.named(EventName.GROUP_UNREAD_COUNT)
        assert count.target == ToSelf()

    def test_group_seen_by_non_member(self, outsider, group, presence):
        result = SeenService.mark_group_seen(outsider, group.id, presence=presence)

        assert result.error_code == "NOT_MEMBER"


# =============================================================================
# Pins
# =============================================================================


@pytest.mark.django_db
class TestPinService:
    def test_pin_twice_keeps_single_pin(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)
        target = DirectTarget(bob.id)

        first = PinService.pin(alice, message.id, target)
        second = PinService.pin(alice, message.id, target)

        assert first.success and second.success
        assert PinnedMessage.objects.filter(user=alice).count() == 1
        [event] = second.data.named(EventName.MESSAGE_PINNED)
        assert event.target == ToSelf()
        assert event.payload["messageId"] == message.id
        assert event.payload["chatPartnerId"] == bob.id

    def test_unpin_missing_pin_is_noop(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = PinService.unpin(alice, message.id, DirectTarget(bob.id))

        assert result.success
        assert result.data.value == 0
        assert result.data.named(EventName.MESSAGE_UNPINNED)[0].target == ToSelf()

    def test_pins_are_per_user(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)
        PinService.pin(alice, message.id, DirectTarget(bob.id))

        PinService.pin(bob, message.id, DirectTarget(alice.id))
        PinService.unpin(alice, message.id, DirectTarget(bob.id))

        assert list(PinnedMessage.objects.values_list("user_id", flat=True)) == [bob.id]

    def test_missing_context(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = PinService.pin(alice, message.id, None)

        assert result.error_code == "MISSING_CONTEXT"
        assert result.error == "Chat partner ID or group ID is required"

    def test_message_from_other_conversation(self, alice, bob, carol):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = PinService.pin(alice, message.id, DirectTarget(carol.id))

        assert result.error_code == "CONTEXT_MISMATCH"

    def test_group_pin_requires_membership(self, outsider, group):
        message = GroupMessageFactory(group=group)

        result = PinService.pin(outsider, message.id, GroupTarget(group.id))

        assert result.error_code == "NOT_MEMBER"

    def test_group_pin_with_direct_target_mismatches(self, alice, bob, group):
        message = GroupMessageFactory(group=group)

        result = PinService.pin(alice, message.id, DirectTarget(bob.id))

        assert result.error_code == "CONTEXT_MISMATCH"

    def test_cannot_pin_deleted_message(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob, deleted_for_everyone=True)

        result = PinService.pin(alice, message.id, DirectTarget(bob.id))

        assert result.error_code == "MESSAGE_DELETED"

    def test_unknown_message(self, alice, bob):
        result = PinService.pin(alice, 999999, DirectTarget(bob.id))

        assert result.error_code == "NOT_FOUND"

    def test_list_pins_filtered_by_target(self, alice, bob, group):
        direct = DirectMessageFactory(sender=alice, receiver=bob)
        in_group = GroupMessageFactory(group=group)
        PinService.pin(alice, direct.id, DirectTarget(bob.id))
        PinService.pin(alice, in_group.id, GroupTarget(group.id))

        assert PinService.list_pins(alice).count() == 2
        [pin] = PinService.list_pins(alice, GroupTarget(group.id))
        assert pin.message_id == in_group.id


# =============================================================================
# Edit / delete
# =============================================================================


@pytest.mark.django_db
class TestEditMessage:
    def test_sender_edits_direct_message(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob, text="old")

        outcome = MessageActionService.edit(alice, message.id, "  new  ").data

        message.refresh_from_db()
        assert message.text == "new"
        assert message.edited is True
        assert message.edited_at is not None
        assert targets_of(outcome, EventName.MESSAGE_EDITED) == [ToUser(bob.id), ToSelf()]
        payload = outcome.named(EventName.MESSAGE_EDITED)[0].payload
        assert payload["messageId"] == message.id
        assert payload["newText"] == "new"
        assert "groupId" not in payload

    def test_group_edit_goes_to_room(self, alice, group):
        message = GroupMessageFactory(group=group, sender=alice)

        outcome = MessageActionService.edit(alice, message.id, "fixed").data

        assert targets_of(outcome, EventName.MESSAGE_EDITED) == [
            ToRoom(group.id, exclude_user_id=alice.id),
            ToSelf(),
        ]
        assert outcome.named(EventName.MESSAGE_EDITED)[0].payload["groupId"] == group.id

    def test_note_to_self_edit_is_sent_once(self, alice):
        message = DirectMessageFactory(sender=alice, receiver=alice, text="todo")

        outcome = MessageActionService.edit(alice, message.id, "done").data

        assert targets_of(outcome, EventName.MESSAGE_EDITED) == [ToSelf()]

    def test_only_sender_can_edit(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob, text="old")

        result = MessageActionService.edit(bob, message.id, "hacked")

        assert result.error_code == "PERMISSION_DENIED"
        assert result.error == "You can only edit your own messages"
        message.refresh_from_db()
        assert message.text == "old"

    def test_empty_text_rejected(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = MessageActionService.edit(alice, message.id, "   ")

        assert result.error == "New text cannot be empty"

    def test_deleted_message_cannot_be_edited(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob, deleted_for_everyone=True)

        result = MessageActionService.edit(alice, message.id, "again")

        assert result.error_code == "MESSAGE_DELETED"

    def test_outsider_sees_not_found(self, alice, bob, outsider):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = MessageActionService.edit(outsider, message.id, "x")

        assert result.error_code == "NOT_FOUND"


@pytest.mark.django_db
class TestDeleteMessage:
    def test_delete_for_me_hides_only_for_caller(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)
        PinnedMessageFactory(message=message, user=alice, context_key=str(bob.id))
        PinnedMessageFactory(message=message, user=bob, context_key=str(alice.id))

        outcome = MessageActionService.delete(bob, message.id, DeleteType.ME).data

        assert list(message.hidden_for.all()) == [bob]
        assert list(PinnedMessage.objects.values_list("user_id", flat=True)) == [alice.id]
        [event] = outcome.named(EventName.MESSAGE_DELETED)
        assert event.target == ToSelf()
        assert event.payload == {"messageId": message.id, "deleteType": "me"}

    def test_delete_for_everyone_writes_tombstone(self, alice, bob):
        message = DirectMessageFactory(
            sender=alice, receiver=bob, image="https://cdn.example.com/a.png"
        )
        PinnedMessageFactory(message=message, user=bob, context_key=str(alice.id))

        outcome = MessageActionService.delete(alice, message.id, DeleteType.EVERYONE).data

        message.refresh_from_db()
        assert message.text == MESSAGE_CONFIG.TOMBSTONE_TEXT
        assert message.image == ""
        assert message.deleted_for_everyone is True
        assert message.deleted_by_id == alice.id
        assert PinnedMessage.objects.count() == 0
        assert targets_of(outcome, EventName.MESSAGE_DELETED) == [ToUser(bob.id), ToSelf()]
        assert outcome.named(EventName.MESSAGE_DELETED)[0].payload == {
            "messageId": message.id,
            "deleteType": "everyone",
            "text": MESSAGE_CONFIG.TOMBSTONE_TEXT,
            "deletedForEveryone": True,
        }

    def test_note_to_self_delete_for_everyone_is_sent_once(self, alice):
        message = DirectMessageFactory(sender=alice, receiver=alice)

        outcome = MessageActionService.delete(alice, message.id, DeleteType.EVERYONE).data

        assert targets_of(outcome, EventName.MESSAGE_DELETED) == [ToSelf()]

    def test_receiver_cannot_delete_for_everyone(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = MessageActionService.delete(bob, message.id, DeleteType.EVERYONE)

        assert result.error_code == "PERMISSION_DENIED"
        message.refresh_from_db()
        assert message.deleted_for_everyone is False

    def test_group_admin_can_delete_members_message(self, alice, bob, group):
        message = GroupMessageFactory(group=group, sender=bob)

        outcome = MessageActionService.delete(alice, message.id, DeleteType.EVERYONE).data

        assert outcome.value.deleted_for_everyone
        assert targets_of(outcome, EventName.MESSAGE_DELETED) == [
            ToRoom(group.id, exclude_user_id=alice.id),
            ToSelf(),
        ]

    def test_group_member_cannot_delete_others_message(self, alice, carol, group):
        message = GroupMessageFactory(group=group, sender=alice)

        result = MessageActionService.delete(carol, message.id, DeleteType.EVERYONE)

        assert result.error_code == "PERMISSION_DENIED"

    def test_invalid_delete_type(self, alice, bob):
        message = DirectMessageFactory(sender=alice, receiver=bob)

        result = MessageActionService.delete(alice, message.id, "nobody")

        assert result.error_code == "INVALID_DELETE_TYPE"


# =============================================================================
# Typing / search / stars
# =============================================================================


@pytest.mark.django_db
class TestTypingService:
    def test_typing_goes_to_receiver(self, alice, bob):
        outcome = TypingService.notify(alice, bob.id).data

        [event] = outcome.events
        assert event.name == EventName.TYPING
        assert event.payload == {"senderId": alice.id}
        assert event.target == ToUser(bob.id)

    def test_stop_typing(self, alice, bob):
        outcome = TypingService.notify(alice, bob.id, stop=True).data

        assert outcome.events[0].name == EventName.STOP_TYPING

    def test_missing_receiver(self, alice):
        assert TypingService.notify(alice, None).error_code == "VALIDATION_ERROR"


@pytest.mark.django_db
class TestSearchService:
    def test_case_insensitive_across_visible_conversations(self, alice, bob, carol, group):
        direct = DirectMessageFactory(sender=bob, receiver=alice, text="Lunch at noon?")
        in_group = GroupMessageFactory(group=group, sender=carol, text="lunch plans")
        DirectMessageFactory(sender=bob, receiver=carol, text="lunch without alice")

        results = SearchService.search(alice, "LUNCH").data

        assert {m.id for m in results} == {direct.id, in_group.id}

    def test_excludes_hidden_and_deleted(self, alice, bob):
        hidden = DirectMessageFactory(sender=bob, receiver=alice, text="secret one")
        hidden.hidden_for.add(alice)
        DirectMessageFactory(
            sender=bob, receiver=alice, text="secret two", deleted_for_everyone=True
        )

        assert SearchService.search(alice, "secret").data == []

    def test_results_capped(self, alice, bob):
        for _ in range(MESSAGE_CONFIG.SEARCH_MAX_RESULTS + 5):
            DirectMessageFactory(sender=bob, receiver=alice, text="ping")

        results = SearchService.search(alice, "ping").data

        assert len(results) == MESSAGE_CONFIG.SEARCH_MAX_RESULTS
        assert results[0].id > results[-1].id

    def test_empty_query(self, alice):
        result = SearchService.search(alice, "  ")

        assert result.error == "Search query is required"


@pytest.mark.django_db
class TestStarService:
    def test_toggle_message_star(self, alice, bob):
        message = DirectMessageFactory(sender=bob, receiver=alice)

        on = StarService.toggle_message(alice, message.id).data
        off = StarService.toggle_message(alice, message.id).data

        assert on == {"messageId": message.id, "starred": True}
        assert off == {"messageId": message.id, "starred": False}
        assert StarredMessage.objects.count() == 0

    def test_cannot_star_inaccessible_message(self, alice, bob, outsider):
        message = DirectMessageFactory(sender=bob, receiver=alice)

        assert StarService.toggle_message(outsider, message.id).error_code == "NOT_FOUND"

    def test_starred_messages(self, alice, bob):
        message = DirectMessageFactory(sender=bob, receiver=alice)
        StarService.toggle_message(alice, message.id)

        assert list(StarService.starred_messages(alice)) == [message]
        assert list(StarService.starred_messages(bob)) == []

    def test_toggle_chat_star(self, alice, bob, group):
        direct = StarService.toggle_chat(alice, DirectTarget(bob.id)).data
        grouped = StarService.toggle_chat(alice, GroupTarget(group.id)).data

        assert direct == {"chatKey": str(bob.id), "starred": True}
        assert grouped == {"chatKey": f"group_{group.id}", "starred": True}
        assert StarredChat.objects.filter(user=alice).count() == 2

    def test_toggle_chat_star_requires_membership(self, outsider, group):
        result = StarService.toggle_chat(outsider, GroupTarget(group.id))

        assert result.error_code == "NOT_MEMBER"


# =============================================================================
# Group lifecycle
# =============================================================================


@pytest.mark.django_db
class TestGroupCreate:
    def test_creator_becomes_admin_and_members_are_told(self, alice, bob, carol):
        outcome = GroupService.create(alice, "  Weekend  ", [bob.id, carol.id]).data

        group = outcome.value
        assert group.name == "Weekend"
        assert group.admin_ids() == [alice.id]
        assert sorted(group.member_ids()) == sorted([alice.id, bob.id, carol.id])
        assert set(outcome.effects_of(Subscribe)) == {
            Subscribe(group.id, alice.id),
            Subscribe(group.id, bob.id),
            Subscribe(group.id, carol.id),
        }
        assert targets_of(outcome, EventName.ADDED_TO_GROUP) == [
            ToUser(bob.id),
            ToUser(carol.id),
        ]
        payload = outcome.named(EventName.ADDED_TO_GROUP)[0].payload
        assert payload["group"]["admins"] == [alice.id]

    def test_creator_listed_as_member_is_not_duplicated(self, alice):
        outcome = GroupService.create(alice, "Solo", [alice.id]).data

        assert outcome.value.member_ids() == [alice.id]

    def test_unknown_member(self, alice):
        result = GroupService.create(alice, "Team", [999999])

        assert result.error_code == "NOT_FOUND"
        assert result.errors == {"userIds": ["999999"]}
        assert Group.objects.count() == 0

    def test_name_required(self, alice):
        result = GroupService.create(alice, "  ")

        assert result.error_code == "VALIDATION_ERROR"


@pytest.mark.django_db
class TestGroupAdministration:
    def test_update_broadcasts_to_room(self, alice, group):
        outcome = GroupService.update(alice, group.id, name="Renamed").data

        group.refresh_from_db()
        assert group.name == "Renamed"
        [event] = outcome.named(EventName.GROUP_UPDATED)
        assert event.target == ToRoom(group.id)
        assert event.payload["name"] == "Renamed"

    def test_non_admin_cannot_update(self, bob, group):
        result = GroupService.update(bob, group.id, name="Mine")

        assert result.error_code == "PERMISSION_DENIED"
        assert result.error == "Only group admins can perform this action"

    def test_delete_removes_group_and_counters(self, alice, bob, carol, group):
        UnreadService.increment([bob.id], group.conversation_key)

        outcome = GroupService.delete(alice, group.id).data

        assert not Group.objects.filter(id=group.id).exists()
        assert UnreadCounter.objects.count() == 0
        assert outcome.events[0].name == EventName.GROUP_DELETED
        assert outcome.events[0].target == ToRoom(group.id)
        assert {u.user_id for u in outcome.effects_of(Unsubscribe)} == {
            alice.id,
            bob.id,
            carol.id,
        }

    def test_add_members(self, alice, outsider, group):
        outcome = GroupService.add_members(alice, group.id, [outsider.id]).data

        assert group.is_member(outsider.id)
        [added] = outcome.named(EventName.MEMBER_ADDED)
        assert added.target == ToRoom(group.id)
        assert added.payload["memberIds"] == [outsider.id]
        assert outcome.effects_of(Subscribe) == [Subscribe(group.id, outsider.id)]
        assert targets_of(outcome, EventName.ADDED_TO_GROUP) == [ToUser(outsider.id)]

    def test_add_existing_members_fails(self, alice, bob, group):
        result = GroupService.add_members(alice, group.id, [bob.id])

        assert result.error_code == "ALREADY_MEMBERS"
        assert result.error == "All users are already in group"

    def test_remove_member_unsubscribes_before_room_broadcast(self, alice, bob, group):
        UnreadService.increment([bob.id], group.conversation_key)

        outcome = GroupService.remove_member(alice, group.id, bob.id).data

        assert not group.is_member(bob.id)
        assert UnreadService.get(bob.id, group.conversation_key) == 0
        kinds = [getattr(e, "name", type(e).__name__) for e in outcome.events]
        assert kinds == [
            EventName.REMOVED_FROM_GROUP,
            "Unsubscribe",
            EventName.MEMBER_REMOVED,
        ]
        assert outcome.events[0].target == ToUser(bob.id)
        assert outcome.events[2].payload == {"groupId": group.id, "removedMemberId": bob.id}

    def test_remove_self_rejected(self, alice, group):
        result = GroupService.remove_member(alice, group.id, alice.id)

        assert result.error == "Use leave to exit the group"

    def test_remove_admin_rejected(self, alice, bob, group):
        GroupService.promote(alice, group.id, bob.id)

        result = GroupService.remove_member(alice, group.id, bob.id)

        assert result.error_code == "PERMISSION_DENIED"
        assert result.error == "Cannot remove another admin"

    def test_remove_non_member(self, alice, outsider, group):
        result = GroupService.remove_member(alice, group.id, outsider.id)

        assert result.error_code == "NOT_MEMBER"

    def test_promote(self, alice, bob, group):
        outcome = GroupService.promote(alice, group.id, bob.id).data

        assert group.is_admin(bob.id)
        [event] = outcome.named(EventName.MEMBER_PROMOTED)
        assert event.payload["newAdminId"] == bob.id
        assert sorted(event.payload["admins"]) == sorted([alice.id, bob.id])


@pytest.mark.django_db
class TestGroupLeave:
    def test_member_leaves(self, bob, group):
        outcome = GroupService.leave(bob, group.id).data

        assert not group.is_member(bob.id)
        assert outcome.effects_of(Unsubscribe) == [Unsubscribe(group.id, bob.id)]
        assert targets_of(outcome, EventName.LEFT_ROOM) == [ToSelf()]
        [left] = outcome.named(EventName.MEMBER_LEFT)
        assert left.target == ToRoom(group.id)
        assert left.payload == {"groupId": group.id, "userId": bob.id}

    def test_last_admin_cannot_leave(self, alice, group):
        result = GroupService.leave(alice, group.id)

        assert result.error_code == "LAST_ADMIN"
        assert group.is_member(alice.id)

    def test_admin_can_leave_when_another_admin_exists(self, alice, bob, group):
        GroupMember.objects.filter(group=group, user=bob).update(role=GroupRole.ADMIN)

        assert GroupService.leave(alice, group.id).success

    def test_non_member(self, outsider, group):
        assert GroupService.leave(outsider, group.id).error_code == "NOT_MEMBER"

    def test_unknown_group(self, bob):
        assert GroupService.leave(bob, 999999).error_code == "NOT_FOUND"


@pytest.mark.django_db
class TestGroupTimeline:
    def events(self, group):
        return list(
            GroupEvent.objects.filter(group=group)
            .order_by("id")
            .values_list("event_type", "actor_id", "target_user_id")
        )

    def test_create_records_group_created(self, alice, bob):
        group = GroupService.create(alice, "Trip", [bob.id]).data.value

        [event] = GroupEvent.objects.filter(group=group)
        assert event.event_type == GroupEventType.GROUP_CREATED
        assert event.actor_name == "Alice"
        assert event.data == {"name": "Trip", "memberIds": [bob.id]}

    def test_update_records_changed_fields(self, alice, group):
        GroupService.update(alice, group.id, name="Renamed", description="New")

        [event] = GroupEvent.objects.filter(group=group)
        assert event.event_type == GroupEventType.GROUP_UPDATED
        assert event.data == {"fields": ["name", "description"]}

    def test_membership_changes_are_recorded_in_order(
        self, alice, bob, carol, outsider, group
    ):
        GroupService.add_members(alice, group.id, [outsider.id])
        GroupService.promote(alice, group.id, bob.id)
        GroupService.remove_member(alice, group.id, carol.id)
        GroupService.leave(outsider, group.id)

        assert self.events(group) == [
            (GroupEventType.MEMBER_JOINED, alice.id, outsider.id),
            (GroupEventType.ADMIN_PROMOTED, alice.id, bob.id),
            (GroupEventType.MEMBER_REMOVED, alice.id, carol.id),
            (GroupEventType.MEMBER_LEFT, outsider.id, None),
        ]
        removed = GroupEvent.objects.get(event_type=GroupEventType.MEMBER_REMOVED)
        assert removed.target_name == "Carol"

    def test_failed_change_records_nothing(self, bob, group, outsider):
        GroupService.add_members(bob, group.id, [outsider.id])
        GroupService.leave(outsider, group.id)

        assert self.events(group) == []

    def test_events_go_with_the_group(self, alice, group):
        GroupService.update(alice, group.id, name="Renamed")

        GroupService.delete(alice, group.id)

        assert GroupEvent.objects.count() == 0


# =============================================================================
# History
# =============================================================================


@pytest.mark.django_db
class TestHistoryService:
    def test_direct_history_excludes_hidden_and_other_chats(self, alice, bob, carol):
        first = DirectMessageFactory(sender=alice, receiver=bob)
        reply = DirectMessageFactory(sender=bob, receiver=alice)
        hidden = DirectMessageFactory(sender=bob, receiver=alice)
        hidden.hidden_for.add(alice)
        DirectMessageFactory(sender=alice, receiver=carol)

        messages = HistoryService.direct_history(alice, bob.id).data

        assert sorted(m.id for m in messages) == [first.id, reply.id]
        assert hidden in HistoryService.direct_history(bob, alice.id).data

    def test_direct_history_unknown_partner(self, alice):
        assert HistoryService.direct_history(alice, 999999).error_code == "NOT_FOUND"
        assert HistoryService.direct_history(alice, "abc").error_code == "NOT_FOUND"

    def test_group_history_requires_membership(self, outsider, group):
        GroupMessageFactory(group=group)

        assert HistoryService.group_history(outsider, group.id).error_code == "NOT_MEMBER"
        assert HistoryService.group_history(outsider, 999999).error_code == "NOT_FOUND"

    def test_group_history_excludes_hidden(self, alice, bob, group):
        kept = GroupMessageFactory(group=group, sender=alice)
        hidden = GroupMessageFactory(group=group, sender=alice)
        hidden.hidden_for.add(bob)

        assert list(HistoryService.group_history(bob, group.id).data) == [kept]

    def test_group_events_require_membership(self, outsider, group):
        assert HistoryService.group_events(outsider, group.id).error_code == "NOT_MEMBER"

    def test_chat_partners_with_last_visible_message(self, alice, bob, carol, outsider):
        DirectMessageFactory(sender=alice, receiver=bob)
        last_with_bob = DirectMessageFactory(sender=bob, receiver=alice)
        DirectMessageFactory(sender=carol, receiver=alice).hidden_for.add(alice)
        DirectMessageFactory(sender=bob, receiver=outsider)

        partners = {p.id: p for p in HistoryService.chat_partners(alice)}

        assert set(partners) == {bob.id}
        assert partners[bob.id].last_message_id == last_with_bob.id
        assert partners[bob.id].last_message_at == last_with_bob.created_at

    def test_partner_context(self, alice, bob):
        message = DirectMessageFactory(sender=bob, receiver=alice)
        UnreadService.increment([alice.id], str(bob.id))

        partners = list(HistoryService.chat_partners(alice))
        context = HistoryService.partner_context(alice, partners)

        assert context["messages"] == {message.id: message}
        assert context["unread"] == {str(bob.id): 1}


@pytest.mark.django_db
def test_group_factory_creates_admin_membership():
    group = GroupFactory()

    assert group.admin_ids() == [group.created_by_id]
