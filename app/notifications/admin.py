"""Django admin configuration for notification models."""

from django.contrib import admin

from notifications.models import DeviceToken


@admin.register(DeviceToken)
class DeviceTokenAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "device_type", "created_at"]
    list_filter = ["device_type"]
    search_fields = ["user__email", "token"]
    raw_id_fields = ["user"]
    readonly_fields = ["created_at", "updated_at"]
