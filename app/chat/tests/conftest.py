"""
Test configuration and fixtures for chat tests.

Provides:
- Three users (alice, bob, carol) with authenticated API clients
- A group owned by alice with bob and carol as members
- A helper to mark users online in the presence registry

Usage:
    def test_example(alice, bob, presence, online):
        online(bob)
        result = DeliveryService.send_direct(alice, bob.id, "hi", presence=presence)
        assert result.data.value.status == "delivered"
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from chat.tests.factories import GroupFactory


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def alice(db):
    return UserFactory(email="alice@example.com", full_name="Alice")


@pytest.fixture
def bob(db):
    return UserFactory(email="bob@example.com", full_name="Bob")


@pytest.fixture
def carol(db):
    return UserFactory(email="carol@example.com", full_name="Carol")


@pytest.fixture
def outsider(db):
    """A user who belongs to no test conversation."""
    return UserFactory(email="outsider@example.com", full_name="Outsider")


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def group(alice, bob, carol):
    """Group created by alice (admin) with bob and carol as members."""
    return GroupFactory(name="Team", created_by=alice, members=[bob, carol])


# =============================================================================
# Presence Fixtures
# =============================================================================


@pytest.fixture
def online(presence):
    """
    Register users as connected with a fake channel name.

    Returns a callable: ``online(user, channel=None)``.
    """

    def _online(user, channel=None):
        channel = channel or f"test.channel!{user.id}"
        presence.register(user.id, channel)
        return channel

    return _online


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def authenticated_client_factory():
    """Create API clients authenticated as any user."""

    def _create(user):
        client = APIClient()
        refresh = RefreshToken.for_user(user)
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {refresh.access_token}")
        return client

    return _create


@pytest.fixture
def alice_client(alice, authenticated_client_factory):
    return authenticated_client_factory(alice)


@pytest.fixture
def bob_client(bob, authenticated_client_factory):
    return authenticated_client_factory(bob)


@pytest.fixture
def api_client():
    return APIClient()
