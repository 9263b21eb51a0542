"""
Serializers for chat payloads and the chat REST API.

Output serializers double as the payload format of real-time events, so a
message looks the same whether it arrives in ``newMessage`` or from
``GET /api/v1/chat/pins/``. Keys are camelCase to match the event names.

Serializer Hierarchy:
    MessageReplySerializer: Minimal quoted message inside a reply
    MessageSerializer: Full message payload
    GroupSerializer: Group with member and admin ids
    PinnedMessageSerializer: Pin with its message
    ChatPartnerSerializer: Recent chat entry with last message and unread count
    GroupEventSerializer: Group timeline entry

    GroupCreateSerializer / GroupUpdateSerializer: Group lifecycle input
    MemberIdsSerializer / MemberIdSerializer: Membership changes
    ConversationContextSerializer: chatPartnerId | groupId input
    PinRequestSerializer: Pin/unpin input
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.models import User

from chat.models import Group, GroupEvent, GroupRole, Message, PinnedMessage
from chat.targets import parse_target


class MessageReplySerializer(serializers.ModelSerializer):
    """Quoted message shown above a reply."""

    senderId = serializers.IntegerField(source="sender_id", read_only=True)
    deletedForEveryone = serializers.BooleanField(
        source="deleted_for_everyone", read_only=True
    )

    class Meta:
        model = Message
        fields = ["id", "senderId", "text", "image", "deletedForEveryone"]
        read_only_fields = fields


class MessageSerializer(serializers.ModelSerializer):
    """Full message payload used by events and REST responses."""

    senderId = serializers.IntegerField(source="sender_id", read_only=True)
    senderName = serializers.CharField(source="sender.display_name", read_only=True)
    receiverId = serializers.IntegerField(source="receiver_id", read_only=True)
    groupId = serializers.IntegerField(source="group_id", read_only=True)
    replyTo = MessageReplySerializer(source="reply_to", read_only=True)
    deletedForEveryone = serializers.BooleanField(
        source="deleted_for_everyone", read_only=True
    )
    deletedBy = serializers.IntegerField(source="deleted_by_id", read_only=True)
    editedAt = serializers.DateTimeField(source="edited_at", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Message
        fields = [
            "id",
            "senderId",
            "senderName",
            "receiverId",
            "groupId",
            "text",
            "image",
            "status",
            "replyTo",
            "edited",
            "editedAt",
            "deletedForEveryone",
            "deletedBy",
            "createdAt",
        ]
        read_only_fields = fields


def message_payload(message: Message, **overrides) -> dict:
    """Serialize a message to a plain dict, optionally overriding keys."""
    data = dict(MessageSerializer(message).data)
    data.update(overrides)
    return data


class GroupSerializer(serializers.ModelSerializer):
    """Group with member and admin ids."""

    members = serializers.SerializerMethodField()
    admins = serializers.SerializerMethodField()
    createdBy = serializers.IntegerField(source="created_by_id", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = Group
        fields = [
            "id",
            "name",
            "description",
            "image",
            "members",
            "admins",
            "createdBy",
            "createdAt",
        ]
        read_only_fields = fields

    def get_members(self, obj):
        return [m.user_id for m in obj.memberships.all()]

    def get_admins(self, obj):
        return [m.user_id for m in obj.memberships.all() if m.role == GroupRole.ADMIN]


def group_payload(group: Group) -> dict:
    return dict(GroupSerializer(group).data)


class PinnedMessageSerializer(serializers.ModelSerializer):
    messageId = serializers.IntegerField(source="message_id", read_only=True)
    contextKey = serializers.CharField(source="context_key", read_only=True)
    message = MessageSerializer(read_only=True)
    pinnedAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = PinnedMessage
        fields = ["id", "messageId", "contextKey", "message", "pinnedAt"]
        read_only_fields = fields


class ChatPartnerSerializer(serializers.ModelSerializer):
    """
    One entry of the recent chats list.

    Expects the annotations from HistoryService.chat_partners and a context
    from HistoryService.partner_context.
    """

    fullName = serializers.CharField(source="display_name", read_only=True)
    lastSeen = serializers.DateTimeField(source="last_seen", read_only=True)
    lastMessageAt = serializers.DateTimeField(source="last_message_at", read_only=True)
    lastMessage = serializers.SerializerMethodField()
    unreadCount = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "fullName",
            "online",
            "lastSeen",
            "lastMessageAt",
            "lastMessage",
            "unreadCount",
        ]
        read_only_fields = fields

    def get_lastMessage(self, obj):
        message = self.context.get("messages", {}).get(obj.last_message_id)
        return MessageSerializer(message).data if message is not None else None

    def get_unreadCount(self, obj):
        return self.context.get("unread", {}).get(str(obj.id), 0)


class GroupEventSerializer(serializers.ModelSerializer):
    groupId = serializers.IntegerField(source="group_id", read_only=True)
    type = serializers.CharField(source="event_type", read_only=True)
    userId = serializers.IntegerField(source="actor_id", read_only=True)
    userName = serializers.CharField(source="actor_name", read_only=True)
    targetUserId = serializers.IntegerField(source="target_user_id", read_only=True)
    targetUserName = serializers.CharField(source="target_name", read_only=True)
    additionalData = serializers.JSONField(source="data", read_only=True)
    createdAt = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = GroupEvent
        fields = [
            "id",
            "groupId",
            "type",
            "userId",
            "userName",
            "targetUserId",
            "targetUserName",
            "additionalData",
            "createdAt",
        ]
        read_only_fields = fields


# =============================================================================
# Input serializers
# =============================================================================


class GroupCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100)
    description = serializers.CharField(max_length=500, required=False, default="")
    image = serializers.CharField(required=False, default="", allow_blank=True)
    memberIds = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=True,
        required=False,
        default=list,
    )


class GroupUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=100, required=False)
    description = serializers.CharField(max_length=500, required=False, allow_blank=True)
    image = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        if not attrs:
            raise serializers.ValidationError("Provide at least one field to update.")
        return attrs


class MemberIdsSerializer(serializers.Serializer):
    userIds = serializers.ListField(
        child=serializers.IntegerField(min_value=1),
        allow_empty=False,
    )


class MemberIdSerializer(serializers.Serializer):
    userId = serializers.IntegerField(min_value=1)


class ConversationContextSerializer(serializers.Serializer):
    """Accepts ``chatPartnerId`` or ``groupId`` and exposes a target."""

    chatPartnerId = serializers.IntegerField(required=False, allow_null=True)
    groupId = serializers.IntegerField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("chatPartnerId") is None and attrs.get("groupId") is None:
            raise serializers.ValidationError(
                "Chat partner ID or group ID is required"
            )
        attrs["target"] = parse_target(
            chat_partner_id=attrs.get("chatPartnerId"),
            group_id=attrs.get("groupId"),
        )
        return attrs


class PinRequestSerializer(ConversationContextSerializer):
    messageId = serializers.IntegerField(min_value=1)
