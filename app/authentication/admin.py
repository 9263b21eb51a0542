"""
Django admin configuration for the User model.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin for email-based users, showing persisted presence."""

    list_display = (
        "email",
        "full_name",
        "online",
        "last_seen",
        "is_active",
        "is_staff",
    )
    list_filter = ("online", "is_active", "is_staff", "is_superuser")
    search_fields = ("email", "full_name")
    ordering = ("-date_joined",)
    readonly_fields = ("online", "last_seen", "date_joined", "last_login")

    fieldsets = (
        (None, {"fields": ("email", "password", "full_name")}),
        ("Presence", {"fields": ("online", "last_seen")}),
        (
            "Status",
            {"fields": ("is_active", "is_staff", "is_superuser")},
        ),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "full_name", "password1", "password2"),
            },
        ),
    )
