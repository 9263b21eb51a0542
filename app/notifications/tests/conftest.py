"""
Test configuration and fixtures for notification tests.

Usage:
    def test_example(user, fake_sender):
        fake_sender.send.return_value = PushResult(sent=1)
        send_push_notification(user.id, "title", "body")
"""

from unittest.mock import MagicMock, patch

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from notifications.push import PushResult


@pytest.fixture
def user(db):
    return UserFactory(full_name="Dana")


@pytest.fixture
def other_user(db):
    return UserFactory()


@pytest.fixture
def authenticated_client(user):
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
    return client


@pytest.fixture
def fake_sender():
    """Replace the configured push sender with a mock."""
    sender = MagicMock()
    sender.send.return_value = PushResult()
    with patch("notifications.tasks.get_push_sender", return_value=sender):
        yield sender
