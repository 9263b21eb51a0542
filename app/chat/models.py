"""
Chat models.

Models:
    Group: A named group conversation
    GroupMember: Membership of a user in a group with admin/member role
    GroupEvent: Persisted group lifecycle event (joins, leaves, promotions)
    Message: A direct or group message with a forward-only delivery status
    UnreadCounter: Per-user unread count for one conversation key
    PinnedMessage: Per-user pin of a message within a conversation context
    StarredMessage: Per-user starred message
    StarredChat: Per-user starred conversation

Conversation keys:
    Direct chats are keyed by the partner's user id ("7"); groups by
    "group_<id>" ("group_3"). See chat/targets.py.

Delivery status:
    sent -> delivered -> seen. A single message is delivered through the
    django-fsm transition on Message; bulk updates in the service layer
    (delivered and seen) filter on the source status so they can only move
    forward.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django_fsm import FSMField, transition

from core.models import BaseModel

from chat.constants import CONVERSATION_KEYS, MESSAGE_CONFIG


class MessageStatus(models.TextChoices):
    """Delivery status of a message."""

    SENT = "sent", "Sent"
    DELIVERED = "delivered", "Delivered"
    SEEN = "seen", "Seen"


class GroupRole(models.TextChoices):
    """Role of a user within a group."""

    ADMIN = "admin", "Admin"
    MEMBER = "member", "Member"


class GroupEventType(models.TextChoices):
    """Kind of a recorded group lifecycle event."""

    GROUP_CREATED = "group_created", "Group created"
    GROUP_UPDATED = "group_updated", "Group updated"
    MEMBER_JOINED = "member_joined", "Member joined"
    MEMBER_LEFT = "member_left", "Member left"
    MEMBER_REMOVED = "member_removed", "Member removed"
    ADMIN_PROMOTED = "admin_promoted", "Admin promoted"


class Group(BaseModel):
    """
    A group conversation.

    Membership and admin rights live on GroupMember rows. Deleting a group
    cascades to its memberships and messages.
    """

    name = models.CharField(
        max_length=100,
        help_text="Group display name",
    )

    description = models.CharField(
        max_length=500,
        blank=True,
        help_text="Optional group description",
    )

    image = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH,
        blank=True,
        help_text="URL of the group image",
    )

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_groups",
        help_text="User who created the group",
    )

    class Meta:
        db_table = "chat_group"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"Group {self.id}: {self.name}"

    @property
    def conversation_key(self) -> str:
        return f"{CONVERSATION_KEYS.GROUP_PREFIX}{self.id}"

    def member_ids(self) -> list[int]:
        return list(self.memberships.values_list("user_id", flat=True))

    def admin_ids(self) -> list[int]:
        return list(
            self.memberships.filter(role=GroupRole.ADMIN).values_list(
                "user_id", flat=True
            )
        )

    def is_member(self, user_id) -> bool:
        return self.memberships.filter(user_id=user_id).exists()

    def is_admin(self, user_id) -> bool:
        return self.memberships.filter(user_id=user_id, role=GroupRole.ADMIN).exists()


class GroupMember(BaseModel):
    """Membership of a user in a group."""

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="memberships",
        help_text="Group the user belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="group_memberships",
        help_text="Member user",
    )

    role = models.CharField(
        max_length=10,
        choices=GroupRole.choices,
        default=GroupRole.MEMBER,
        help_text="Admins can manage members and delete any message",
    )

    class Meta:
        db_table = "chat_group_member"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["group", "user"],
                name="unique_group_membership",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "group"], name="chat_member_user_idx"),
        ]

    def __str__(self) -> str:
        return f"GroupMember: {self.user_id} in {self.group_id} ({self.role})"

    @property
    def is_admin(self) -> bool:
        return self.role == GroupRole.ADMIN


class Message(BaseModel):
    """
    A direct or group message.

    Exactly one of ``receiver`` / ``group`` is set, and at least one of
    ``text`` / ``image`` is non-empty; both are enforced by database
    constraints.

    Soft deletion:
        hidden_for: users who deleted the message "for me"
        deleted_for_everyone: text replaced by the tombstone, image cleared
    """

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="sent_messages",
        help_text="User who sent the message",
    )

    receiver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="received_messages",
        help_text="Recipient of a direct message (null for group messages)",
    )

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="messages",
        help_text="Group of a group message (null for direct messages)",
    )

    text = models.TextField(
        blank=True,
        max_length=MESSAGE_CONFIG.MAX_TEXT_LENGTH,
        help_text="Message text (trimmed)",
    )

    image = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_IMAGE_URL_LENGTH,
        blank=True,
        help_text="URL of the attached image",
    )

    status = FSMField(
        default=MessageStatus.SENT,
        choices=MessageStatus.choices,
        db_index=True,
        help_text="Delivery status (forward-only: sent, delivered, seen)",
    )

    reply_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
        help_text="Message this one replies to",
    )

    hidden_for = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name="hidden_messages",
        help_text="Users who deleted this message for themselves",
    )

    deleted_for_everyone = models.BooleanField(
        default=False,
        help_text="Whether the message was deleted for all participants",
    )

    deleted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who deleted the message for everyone",
    )

    edited = models.BooleanField(
        default=False,
        help_text="Whether the text was edited after sending",
    )

    edited_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the message was last edited",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["created_at", "id"]
        indexes = [
            # Reconciliation of a reconnecting recipient
            models.Index(
                fields=["receiver", "status"],
                name="chat_msg_receiver_status_idx",
            ),
            models.Index(
                fields=["group", "status"],
                name="chat_msg_group_status_idx",
            ),
            # Direct conversation history
            models.Index(
                fields=["sender", "receiver", "created_at"],
                name="chat_msg_pair_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=(
                    Q(receiver__isnull=False, group__isnull=True)
                    | Q(receiver__isnull=True, group__isnull=False)
                ),
                name="chat_message_direct_xor_group",
            ),
            models.CheckConstraint(
                condition=~Q(text="") | ~Q(image=""),
                name="chat_message_has_content",
            ),
        ]

    def __str__(self) -> str:
        preview = self.text[:50] + "..." if len(self.text) > 50 else self.text
        return f"User {self.sender_id}: {preview or '[image]'} [{self.status}]"

    def involves(self, user_id) -> bool:
        """Whether the user is a participant of this direct message."""
        return user_id in (self.sender_id, self.receiver_id)

    # =========================================================================
    # Status transitions (django-fsm)
    # =========================================================================

    @transition(
        field=status,
        source=MessageStatus.SENT,
        target=MessageStatus.DELIVERED,
    )
    def deliver(self):
        """Transition: SENT -> DELIVERED."""


class UnreadCounter(BaseModel):
    """
    Unread message count of one user for one conversation.

    Only mutated with database-side expressions (``F("count") + 1`` and
    ``update(count=0)``) so concurrent sends to the same offline recipient
    never lose an increment.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="unread_counters",
        help_text="User the counter belongs to",
    )

    conversation_key = models.CharField(
        max_length=64,
        help_text='Partner user id for direct chats, "group_<id>" for groups',
    )

    count = models.PositiveIntegerField(
        default=0,
        help_text="Number of unread messages",
    )

    class Meta:
        db_table = "chat_unread_counter"
        constraints = [
            models.UniqueConstraint(
                fields=["user", "conversation_key"],
                name="unique_unread_counter",
            ),
        ]

    def __str__(self) -> str:
        return f"Unread {self.user_id}/{self.conversation_key}: {self.count}"


class PinnedMessage(BaseModel):
    """
    A message pinned by one user within a conversation context.

    Pins are per user for both direct and group conversations.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="pinned_messages",
        help_text="User who pinned the message",
    )

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="pins",
        help_text="Pinned message",
    )

    context_key = models.CharField(
        max_length=64,
        help_text="Conversation key the pin belongs to",
    )

    class Meta:
        db_table = "chat_pinned_message"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "message", "context_key"],
                name="unique_pin_per_context",
            ),
        ]
        indexes = [
            models.Index(fields=["user", "context_key"], name="chat_pin_ctx_idx"),
        ]


class StarredMessage(BaseModel):
    """A message starred by a user."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="starred_messages",
    )

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="stars",
    )

    class Meta:
        db_table = "chat_starred_message"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "message"],
                name="unique_starred_message",
            ),
        ]


class StarredChat(BaseModel):
    """A conversation starred by a user, keyed like unread counters."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="starred_chats",
    )

    conversation_key = models.CharField(max_length=64)

    class Meta:
        db_table = "chat_starred_chat"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "conversation_key"],
                name="unique_starred_chat",
            ),
        ]


class GroupEvent(BaseModel):
    """
    A group lifecycle event, kept as the group's timeline.

    Names are copied at write time so the timeline still reads correctly
    after a user renames or deletes their account.
    """

    group = models.ForeignKey(
        Group,
        on_delete=models.CASCADE,
        related_name="events",
        help_text="Group the event happened in",
    )

    event_type = models.CharField(
        max_length=20,
        choices=GroupEventType.choices,
        help_text="What happened",
    )

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who performed the action",
    )

    actor_name = models.CharField(max_length=255, blank=True)

    target_user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User the action applied to, if any",
    )

    target_name = models.CharField(max_length=255, blank=True)

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Extra details, e.g. the changed group fields",
    )

    class Meta:
        db_table = "chat_group_event"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["group", "created_at"], name="chat_group_event_idx"),
        ]

    def __str__(self) -> str:
        return f"GroupEvent {self.event_type} in {self.group_id}"
