"""
Tests for authentication app.

This package contains test modules for:
- test_managers.py: UserManager create_user/create_superuser tests
- test_views.py: register, token, refresh, logout and me endpoint tests

Usage:
    pytest authentication/tests/
"""
