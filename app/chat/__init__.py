"""
Chat app for real-time messaging.

This app handles:
- Presence of connected users
- Direct and group messages with delivery status
- Unread counters, pins, stars, edits and deletes
- Group lifecycle and group room subscriptions

Related apps:
    - authentication: User model with online/last_seen fields
    - notifications: Device tokens and push dispatch for offline users

WebSocket Support:
    Uses Django Channels for real-time communication.
    See consumers.py for WebSocket handlers.
    See routing.py for WebSocket URL patterns.

Usage:
    from chat.services import DeliveryService

    result = DeliveryService.send_direct(
        sender=user, receiver_id=7, text="Hello!", presence=registry
    )
"""
