"""
WebSocket URL routing for the chat application.

URL Patterns:
    ws/chat/ - The single chat connection of a user

Authentication:
    JWTAuthMiddleware validates the token (cookie, ?token=, subprotocol or
    Authorization header) and attaches the user to the consumer's scope.
"""

from django.apps import apps
from django.urls import path

from chat import consumers

websocket_urlpatterns = [
    path(
        "ws/chat/",
        consumers.ChatConsumer.as_asgi(presence=apps.get_app_config("chat").presence),
    ),
]
