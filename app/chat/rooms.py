"""
Group room subscription management.

Every group has a channel-layer group ("room") its members' connections are
subscribed to; group-wide events (``recentGroupUpdated``, membership
broadcasts, group edits and deletes) are sent to the room.

This module only decides *who may subscribe*. Lifecycle broadcasts are
produced by GroupService, which owns the membership mutations; the one duty
it delegates here is the forced unsubscribe of a removed member.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult

from chat.constants import PRESENCE_CONFIG
from chat.events import Event, EventName, Outcome, Subscribe, ToSelf, ToUser, Unsubscribe
from chat.models import Group, GroupMember
from chat.targets import coerce_id

if TYPE_CHECKING:
    from authentication.models import User


def room_name(group_id) -> str:
    """Channel-layer group name of a group room."""
    return f"{PRESENCE_CONFIG.ROOM_PREFIX}{group_id}"


def member_group_ids(user_id) -> list[int]:
    return list(
        GroupMember.objects.filter(user_id=user_id).values_list("group_id", flat=True)
    )


def removal_effects(group_id: int, user_id: int) -> list:
    """
    Effects for a member removed from a group.

    The removed user is told first and their connection is unsubscribed
    before any room-wide ``memberRemoved`` broadcast is applied, so they
    never receive it.
    """
    return [
        Event(EventName.REMOVED_FROM_GROUP, {"groupId": group_id}, ToUser(user_id)),
        Unsubscribe(group_id, user_id),
    ]


class RoomService(BaseService):
    """
    Subscription of a connection to group rooms.

    Methods:
        join: Subscribe the acting connection after a membership check
        leave: Unsubscribe the acting connection unconditionally
        auto_join: Subscribe a new connection to all of the user's groups
    """

    @classmethod
    def join(cls, user: User, group_id) -> ServiceResult[Outcome]:
        """
        Subscribe the acting connection to a group room.

        Error codes:
            VALIDATION_ERROR: group id missing
            NOT_FOUND: group does not exist
            NOT_MEMBER: user is not a member of the group
        """
        group_id = coerce_id(group_id)
        if group_id is None:
            return ServiceResult.failure("Group ID is required", error_code="VALIDATION_ERROR")

        group = Group.objects.filter(id=group_id).first()
        if group is None:
            return ServiceResult.failure("Group not found", error_code="NOT_FOUND")

        if not group.is_member(user.id):
            cls.get_logger().warning(
                f"User {user.id} tried to join room of group {group.id} without membership"
            )
            return ServiceResult.failure(
                "You are not a member of this group",
                error_code="NOT_MEMBER",
            )

        outcome = Outcome(group)
        outcome.add(Subscribe(group.id))
        outcome.emit(EventName.JOINED_ROOM, {"groupId": group.id}, ToSelf())
        return ServiceResult.success(outcome)

    @classmethod
    def leave(cls, user: User, group_id) -> ServiceResult[Outcome]:
        """Unsubscribe the acting connection. No membership check."""
        group_id = coerce_id(group_id)
        if group_id is None:
            return ServiceResult.failure("Group ID is required", error_code="VALIDATION_ERROR")

        outcome = Outcome(group_id)
        outcome.add(Unsubscribe(group_id))
        outcome.emit(EventName.LEFT_ROOM, {"groupId": group_id}, ToSelf())
        return ServiceResult.success(outcome)

    @classmethod
    def auto_join(cls, user: User) -> ServiceResult[Outcome]:
        """Subscribe a freshly opened connection to every group of the user."""
        group_ids = member_group_ids(user.id)
        outcome = Outcome(group_ids)
        outcome.extend(Subscribe(group_id) for group_id in group_ids)
        return ServiceResult.success(outcome)
