"""
Presence tracking.

PresenceRegistry is the in-process table of who is connected and through
which channel-layer channel. It is the single source of truth for "is this
user online" and is constructed once per process by ``ChatConfig.ready()``;
consumers and views receive it by injection rather than importing a global.

PresenceService mirrors presence onto the persisted User row (``online`` and
``last_seen``) for clients that read it over REST.

Single-instance constraint:
    The registry is process-local. Running several ASGI workers behind a
    load balancer means each worker only knows its own connections; the
    channel layer still fans events out, but "is X online" answers are per
    process. Deployments run one ASGI process per chat cluster.

Usage:
    registry = PresenceRegistry()
    registry.register(user.id, self.channel_name)
    registry.lookup(user.id)  # -> "specific.abc!def" or None
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from django.contrib.auth import get_user_model
from django.utils import timezone

from core.services import BaseService, ServiceResult

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)


class PresenceRegistry:
    """
    Mapping from user id to the channel name of their active connection.

    At most one entry per user: a second connection for the same user
    replaces the first (last connection wins). ``unregister`` only removes
    the entry when the closing connection is still the one on record, so a
    stale socket closing late cannot knock a newer session offline.

    All methods are guarded by a lock because consumers mutate the table on
    the event loop while REST views read it from worker threads.
    """

    def __init__(self):
        self._channels: dict[int, str] = {}
        self._lock = threading.Lock()

    def register(self, user_id: int, channel_name: str) -> str | None:
        """
        Associate ``channel_name`` with the user, replacing any prior entry.

        Returns:
            The replaced channel name, or None if the user was offline
        """
        user_id = _normalize(user_id)
        with self._lock:
            previous = self._channels.get(user_id)
            self._channels[user_id] = channel_name
        if previous and previous != channel_name:
            logger.info(f"User {user_id} reconnected, replacing channel {previous}")
        return previous

    def unregister(self, user_id: int, channel_name: str) -> bool:
        """
        Remove the entry if ``channel_name`` is still the current one.

        Returns:
            True if the entry was removed
        """
        user_id = _normalize(user_id)
        with self._lock:
            if self._channels.get(user_id) != channel_name:
                return False
            del self._channels[user_id]
        return True

    def lookup(self, user_id) -> str | None:
        with self._lock:
            return self._channels.get(_normalize(user_id))

    def is_online(self, user_id) -> bool:
        return self.lookup(user_id) is not None

    def online_user_ids(self) -> list[int]:
        with self._lock:
            return sorted(self._channels)

    def filter_online(self, user_ids: Iterable) -> set[int]:
        """Subset of ``user_ids`` that currently have a connection."""
        with self._lock:
            return {
                uid for uid in (_normalize(u) for u in user_ids) if uid in self._channels
            }

    def clear(self) -> None:
        with self._lock:
            self._channels.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._channels)

    def __contains__(self, user_id) -> bool:
        return self.is_online(user_id)


def _normalize(user_id):
    try:
        return int(user_id)
    except (TypeError, ValueError):
        return user_id


class PresenceService(BaseService):
    """Persists presence onto the User row."""

    @classmethod
    def mark_online(cls, user_id: int) -> ServiceResult[None]:
        updated = get_user_model().objects.filter(id=user_id).update(
            online=True, last_seen=None
        )
        if not updated:
            return ServiceResult.failure("User not found", error_code="NOT_FOUND")
        cls.get_logger().debug(f"User {user_id} marked online")
        return ServiceResult.success(None)

    @classmethod
    def mark_offline(cls, user_id: int) -> ServiceResult[None]:
        updated = get_user_model().objects.filter(id=user_id).update(
            online=False, last_seen=timezone.now()
        )
        if not updated:
            return ServiceResult.failure("User not found", error_code="NOT_FOUND")
        cls.get_logger().debug(f"User {user_id} marked offline")
        return ServiceResult.success(None)
