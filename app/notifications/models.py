"""
Notification models.

Models:
    DeviceToken: Push token of one device, owned by the last user who
        registered it
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class DeviceType(models.TextChoices):
    """Platform a push token belongs to."""

    WEB = "web", "Web"
    ANDROID = "android", "Android"
    IOS = "ios", "iOS"


class DeviceToken(BaseModel):
    """
    A push notification token registered by a client.

    Tokens are unique across users: registering a token that belongs to
    someone else moves it to the registering user (a device changed hands
    or a different account logged in).
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="device_tokens",
        help_text="User receiving notifications on this device",
    )

    token = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider registration token",
    )

    device_type = models.CharField(
        max_length=10,
        choices=DeviceType.choices,
        default=DeviceType.WEB,
        help_text="Device platform",
    )

    class Meta:
        db_table = "notifications_device_token"
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"DeviceToken {self.device_type} for user {self.user_id}"
