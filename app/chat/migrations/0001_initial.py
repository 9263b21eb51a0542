import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def _id():
    return (
        "id",
        models.BigAutoField(
            auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Group",
            fields=[
                _id(),
                *_timestamps(),
                ("name", models.CharField(help_text="Group display name", max_length=100)),
                (
                    "description",
                    models.CharField(
                        blank=True, help_text="Optional group description", max_length=500
                    ),
                ),
                (
                    "image",
                    models.CharField(
                        blank=True, help_text="URL of the group image", max_length=500
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who created the group",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_groups",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_group",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="GroupMember",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "role",
                    models.CharField(
                        choices=[("admin", "Admin"), ("member", "Member")],
                        default="member",
                        help_text="Admins can manage members and delete any message",
                        max_length=10,
                    ),
                ),
                (
                    "group",
                    models.ForeignKey(
                        help_text="Group the user belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="chat.group",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="Member user",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="group_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_group_member",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(fields=["user", "group"], name="chat_member_user_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("group", "user"), name="unique_group_membership"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Message",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "text",
                    models.TextField(
                        blank=True, help_text="Message text (trimmed)", max_length=2000
                    ),
                ),
                (
                    "image",
                    models.CharField(
                        blank=True, help_text="URL of the attached image", max_length=500
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("sent", "Sent"),
                            ("delivered", "Delivered"),
                            ("seen", "Seen"),
                        ],
                        db_index=True,
                        default="sent",
                        help_text="Delivery status (forward-only: sent, delivered, seen)",
                        max_length=50,
                    ),
                ),
                (
                    "deleted_for_everyone",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the message was deleted for all participants",
                    ),
                ),
                (
                    "edited",
                    models.BooleanField(
                        default=False, help_text="Whether the text was edited after sending"
                    ),
                ),
                (
                    "edited_at",
                    models.DateTimeField(
                        blank=True, help_text="When the message was last edited", null=True
                    ),
                ),
                (
                    "is_forwarded",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the message was forwarded from another chat",
                    ),
                ),
                (
                    "deleted_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who deleted the message for everyone",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "group",
                    models.ForeignKey(
                        blank=True,
                        help_text="Group of a group message (null for direct messages)",
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="messages",
                        to="chat.group",
                    ),
                ),
                (
                    "hidden_for",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Users who deleted this message for themselves",
                        related_name="hidden_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "receiver",
                    models.ForeignKey(
                        blank=True,
                        help_text="Recipient of a direct message (null for group messages)",
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="received_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "reply_to",
                    models.ForeignKey(
                        blank=True,
                        help_text="Message this one replies to",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="replies",
                        to="chat.message",
                    ),
                ),
                (
                    "sender",
                    models.ForeignKey(
                        help_text="User who sent the message",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sent_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_message",
                "ordering": ["created_at", "id"],
                "indexes": [
                    models.Index(
                        fields=["receiver", "status"], name="chat_msg_receiver_status_idx"
                    ),
                    models.Index(
                        fields=["group", "status"], name="chat_msg_group_status_idx"
                    ),
                    models.Index(
                        fields=["sender", "receiver", "created_at"],
                        name="chat_msg_pair_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("group__isnull", True), ("receiver__isnull", False)),
                            models.Q(("group__isnull", False), ("receiver__isnull", True)),
                            _connector="OR",
                        ),
                        name="chat_message_direct_xor_group",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("text", ""), _negated=True),
                            models.Q(("image", ""), _negated=True),
                            _connector="OR",
                        ),
                        name="chat_message_has_content",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UnreadCounter",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "conversation_key",
                    models.CharField(
                        help_text='Partner user id for direct chats, "group_<id>" for groups',
                        max_length=64,
                    ),
                ),
                (
                    "count",
                    models.PositiveIntegerField(
                        default=0, help_text="Number of unread messages"
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User the counter belongs to",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="unread_counters",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_unread_counter",
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "conversation_key"), name="unique_unread_counter"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="PinnedMessage",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "context_key",
                    models.CharField(
                        help_text="Conversation key the pin belongs to", max_length=64
                    ),
                ),
                (
                    "message",
                    models.ForeignKey(
                        help_text="Pinned message",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pins",
                        to="chat.message",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who pinned the message",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pinned_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_pinned_message",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "context_key"], name="chat_pin_ctx_idx")
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "message", "context_key"),
                        name="unique_pin_per_context",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="StarredMessage",
            fields=[
                _id(),
                *_timestamps(),
                (
                    "message",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="stars",
                        to="chat.message",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="starred_messages",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_starred_message",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "message"), name="unique_starred_message"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="StarredChat",
            fields=[
                _id(),
                *_timestamps(),
                ("conversation_key", models.CharField(max_length=64)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="starred_chats",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "db_table": "chat_starred_chat",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("user", "conversation_key"), name="unique_starred_chat"
                    )
                ],
            },
        ),
    ]
