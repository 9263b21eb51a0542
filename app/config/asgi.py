"""
ASGI entry point serving both the REST API and the chat WebSocket.

Run with:
    uvicorn config.asgi:application --host 0.0.0.0 --port 8000

HTTP goes straight to Django. WebSocket handshakes must come from an
allowed host, are authenticated by JWTAuthMiddleware and are routed to
ChatConsumer; a handshake without a valid token is closed with 4001.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

# Populates the app registry; chat.routing reads the presence registry
# from ChatConfig, so it can only be imported afterwards.
http_application = get_asgi_application()

from channels.routing import ProtocolTypeRouter, URLRouter  # noqa: E402
from channels.security.websocket import AllowedHostsOriginValidator  # noqa: E402

from chat.middleware import JWTAuthMiddleware  # noqa: E402
from chat.routing import websocket_urlpatterns  # noqa: E402

application = ProtocolTypeRouter(
    {
        "http": http_application,
        "websocket": AllowedHostsOriginValidator(
            JWTAuthMiddleware(URLRouter(websocket_urlpatterns))
        ),
    }
)
