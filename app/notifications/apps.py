from django.apps import AppConfig


class NotificationsConfig(AppConfig):
    """Device tokens and push dispatch for recipients who are offline."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "notifications"
    verbose_name = "Push notifications"
