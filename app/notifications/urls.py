"""
URL configuration for notifications API.

Routes:
    /device-tokens/   - Register (POST) or remove (DELETE) a push token
"""

from django.urls import path

from notifications.views import DeviceTokenView

app_name = "notifications"

urlpatterns = [
    path("device-tokens/", DeviceTokenView.as_view(), name="device-tokens"),
]
