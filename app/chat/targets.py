"""
Conversation targets.

A conversation is either a direct chat with a partner or a group. Pins,
stars and unread counters are keyed by the target's ``key``:

    DirectTarget(partner_id=7).key  -> "7"
    GroupTarget(group_id=3).key     -> "group_3"

Usage:
    target = parse_target(chat_partner_id=data.get("chatPartnerId"),
                          group_id=data.get("groupId"))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from core.exceptions import ValidationError

from chat.constants import CONVERSATION_KEYS


@dataclass(frozen=True)
class DirectTarget:
    partner_id: int

    @property
    def key(self) -> str:
        return str(self.partner_id)

    @property
    def is_group(self) -> bool:
        return False


@dataclass(frozen=True)
class GroupTarget:
    group_id: int

    @property
    def key(self) -> str:
        return f"{CONVERSATION_KEYS.GROUP_PREFIX}{self.group_id}"

    @property
    def is_group(self) -> bool:
        return True


ConversationTarget = Union[DirectTarget, GroupTarget]


def coerce_id(value) -> int | None:
    """Integer id from client input, or None when missing or malformed."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_id(value, field_name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(
            f"{field_name} must be an integer",
            error_code="INVALID_ID",
            details={field_name: [str(value)]},
        )


def parse_target(chat_partner_id=None, group_id=None) -> ConversationTarget:
    """
    Build a target from loosely typed client input.

    A group id wins when both are present, matching the client behaviour of
    sending the partner id alongside group context.

    Raises:
        ValidationError: neither id supplied or an id is not an integer
    """
    if group_id not in (None, ""):
        return GroupTarget(_as_id(group_id, "groupId"))
    if chat_partner_id not in (None, ""):
        return DirectTarget(_as_id(chat_partner_id, "chatPartnerId"))
    raise ValidationError(
        "Chat partner ID or group ID is required",
        error_code="MISSING_CONTEXT",
    )

