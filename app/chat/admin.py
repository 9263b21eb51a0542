"""
Django admin configuration for chat models.

Provides admin interfaces for:
- Group management with inline memberships
- Message moderation
- Unread counter inspection
- Group timeline events
"""

from django.contrib import admin

from chat.models import (
    Group,
    GroupEvent,
    GroupMember,
    Message,
    PinnedMessage,
    UnreadCounter,
)


class GroupMemberInline(admin.TabularInline):
    """Inline display of memberships in group admin."""

    model = GroupMember
    extra = 0
    readonly_fields = ["created_at"]
    raw_id_fields = ["user"]


@admin.register(Group)
class GroupAdmin(admin.ModelAdmin):
    list_display = ["id", "name", "created_by", "created_at"]
    search_fields = ["name", "id"]
    readonly_fields = ["created_at", "updated_at"]
    raw_id_fields = ["created_by"]
    inlines = [GroupMemberInline]
    ordering = ["-created_at"]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """Admin interface for Message model."""

    list_display = [
        "id",
        "sender",
        "receiver",
        "group",
        "status",
        "deleted_for_everyone",
        "edited",
        "created_at",
    ]
    list_filter = ["status", "deleted_for_everyone", "edited", "created_at"]
    search_fields = ["text", "sender__email"]
    readonly_fields = ["created_at", "updated_at", "edited_at", "status"]
    raw_id_fields = ["sender", "receiver", "group", "reply_to", "deleted_by"]
    filter_horizontal = ["hidden_for"]


@admin.register(UnreadCounter)
class UnreadCounterAdmin(admin.ModelAdmin):
    list_display = ["user", "conversation_key", "count", "updated_at"]
    search_fields = ["user__email", "conversation_key"]
    raw_id_fields = ["user"]


@admin.register(PinnedMessage)
class PinnedMessageAdmin(admin.ModelAdmin):
    list_display = ["user", "message", "context_key", "created_at"]
    raw_id_fields = ["user", "message"]


@admin.register(GroupEvent)
class GroupEventAdmin(admin.ModelAdmin):
    list_display = ["id", "group", "event_type", "actor_name", "target_name", "created_at"]
    list_filter = ["event_type", "created_at"]
    search_fields = ["group__name", "actor_name", "target_name"]
    readonly_fields = ["created_at", "updated_at"]
    raw_id_fields = ["group", "actor", "target_user"]
