"""
Tests for chat app.

This package contains test modules for:
- test_presence.py: PresenceRegistry tests
- test_targets.py: conversation target parsing
- test_media.py: inline image storage
- test_services.py: delivery, seen, pins, edits, groups and search services
- test_events.py: Outcome and event fan-out over the channel layer
- test_middleware.py: JWT WebSocket authentication
- test_consumers.py: WebSocket consumer tests
- test_views.py: REST API endpoint tests

Usage:
    pytest chat/tests/
    pytest chat/tests/test_consumers.py
"""
