"""
User model for the chat service.

User is the identity every chat connection resolves to. Besides the login
fields it carries the persisted side of presence (``online`` and
``last_seen``), which the chat app updates on connect and disconnect.

Related files:
    - managers.py: email-based user creation
    - chat/presence.py: PresenceService writes online/last_seen
"""

from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.db import models

from authentication.managers import UserManager


class User(AbstractBaseUser, PermissionsMixin):
    """
    Custom user model using email as the login identifier.

    Fields:
        email: Login identifier, unique and case-normalized
        full_name: Display name used in push notification titles
        online: Whether the user currently has a live WebSocket connection
        last_seen: When the user's last connection closed
        is_active: Whether the account may authenticate
        is_staff: Admin site access
        date_joined: Account creation timestamp

    Usage:
        user = User.objects.create_user(
            email="ana@example.com",
            password="securepassword",
            full_name="Ana Silva",
        )
    """

    email = models.EmailField(
        unique=True,
        db_index=True,
        max_length=254,
        help_text="User's email address (primary identifier)",
    )

    full_name = models.CharField(
        max_length=150,
        blank=True,
        help_text="Display name shown to other users",
    )

    online = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the user currently has an active real-time connection",
    )
    last_seen = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the user's last real-time connection closed (null while online)",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether this user account is active. Deselect instead of deleting.",
    )
    is_staff = models.BooleanField(
        default=False,
        help_text="Whether the user can access the admin site.",
    )

    date_joined = models.DateTimeField(
        auto_now_add=True,
        help_text="When the user account was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When the user record was last modified",
    )

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = []

    objects = UserManager()

    class Meta:
        verbose_name = "user"
        verbose_name_plural = "users"
        ordering = ["-date_joined"]

    def __str__(self):
        return self.email

    def get_full_name(self):
        """Return the display name, falling back to the email address."""
        return self.full_name or self.email

    def get_short_name(self):
        """Return the first word of the display name or the email local part."""
        if self.full_name:
            return self.full_name.split()[0]
        return self.email.split("@")[0]

    @property
    def display_name(self) -> str:
        return self.get_full_name()
