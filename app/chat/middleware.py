"""
WebSocket authentication middleware.

Authenticates the handshake with a simplejwt access token and attaches the
user to ``scope["user"]``; anything else gets AnonymousUser and is rejected
by the consumer.

Token sources (in order of precedence):
    1. Cookie: jwt=<token> (set by the token endpoint)
    2. Query string: ws://host/ws/chat/?token=<token>
    3. Subprotocol: Sec-WebSocket-Protocol: jwt, <token>
    4. Header: Authorization: Bearer <token>

Usage in config/asgi.py:
    application = ProtocolTypeRouter({
        "websocket": JWTAuthMiddleware(URLRouter(websocket_urlpatterns)),
    })
"""

from __future__ import annotations

import logging
from http.cookies import SimpleCookie
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken

logger = logging.getLogger(__name__)


def _header(scope, name: bytes) -> str | None:
    for key, value in scope.get("headers", []):
        if key.lower() == name:
            return value.decode("latin1")
    return None


def token_from_cookie(scope) -> str | None:
    raw = _header(scope, b"cookie")
    if not raw:
        return None
    cookie = SimpleCookie()
    cookie.load(raw)
    morsel = cookie.get(settings.JWT_COOKIE_NAME)
    return morsel.value if morsel and morsel.value else None


def token_from_query(scope) -> str | None:
    params = parse_qs(scope.get("query_string", b"").decode())
    tokens = params.get("token", [])
    return tokens[0] if tokens else None


def token_from_subprotocol(scope) -> str | None:
    """Expects: Sec-WebSocket-Protocol: jwt, <token>"""
    subprotocols = scope.get("subprotocols", [])
    if len(subprotocols) >= 2 and subprotocols[0] == "jwt":
        return subprotocols[1]
    return None


def token_from_header(scope) -> str | None:
    raw = _header(scope, b"authorization")
    if raw and raw.startswith("Bearer "):
        return raw[len("Bearer "):].strip() or None
    return None


TOKEN_SOURCES = (
    token_from_cookie,
    token_from_query,
    token_from_subprotocol,
    token_from_header,
)


def extract_token(scope) -> str | None:
    for source in TOKEN_SOURCES:
        token = source(scope)
        if token:
            return token
    return None


@database_sync_to_async
def get_user_from_token(token: str):
    """
    Validate an access token and load its user.

    Returns:
        Active User instance if valid, AnonymousUser otherwise
    """
    User = get_user_model()

    try:
        access_token = AccessToken(token)
        user = User.objects.get(id=access_token["user_id"])
    except TokenError as e:
        logger.warning(f"Invalid JWT token on WebSocket handshake: {e}")
        return AnonymousUser()
    except (KeyError, User.DoesNotExist):
        logger.warning("User not found for WebSocket token")
        return AnonymousUser()

    if not user.is_active:
        logger.warning(f"Inactive user attempted WebSocket connection: {user.id}")
        return AnonymousUser()
    return user


class JWTAuthMiddleware(BaseMiddleware):
    """JWT authentication middleware for WebSocket connections."""

    async def __call__(self, scope, receive, send):
        scope = dict(scope)
        token = extract_token(scope)
        scope["user"] = await get_user_from_token(token) if token else AnonymousUser()
        return await super().__call__(scope, receive, send)
