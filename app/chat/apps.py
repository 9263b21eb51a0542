"""
Chat application configuration.

This app provides the real-time chat system with:
- Presence tracking of connected users
- Direct and group messages with sent/delivered/seen status
- Unread counters, pins, stars, edits and deletes
- Group rooms with membership broadcasts
"""

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def ready(self):
        from chat.presence import PresenceRegistry

        # Process-local; one registry shared by every consumer and view
        self.presence = PresenceRegistry()
