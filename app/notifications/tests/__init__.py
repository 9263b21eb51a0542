"""
Tests for notifications app.

This package contains test modules for:
- test_push.py: push sender implementations
- test_services.py: DeviceTokenService tests
- test_tasks.py: send_push_notification task tests
- test_views.py: device token endpoint tests

Usage:
    pytest notifications/tests/
"""
