"""
Authentication application.

Provides the email-based User model every chat connection resolves to, and
the JWT endpoints used to obtain credentials for the REST API and the
WebSocket handshake.

Key components:
    - User model: Email login plus persisted presence (online, last_seen)
    - Token views: simplejwt pair with an access-token cookie

Usage:
    from authentication.models import User
"""
