"""
Role utility functions for moderator checks.

Moderators are members with the Administrator permission, the configured
moderator role, or a bot owner id.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional

import discord

from tierlist_bot.core.models import Reviewer

__all__ = [
    "has_role",
    "is_administrator",
    "is_bot_owner",
    "is_moderator",
    "reviewer_from",
]


def is_administrator(user: Any) -> bool:
    """True when the member's guild permissions include Administrator."""
    permissions = getattr(user, "guild_permissions", None)
    return bool(permissions is not None and getattr(permissions, "administrator", False))


def is_bot_owner(user: Any, owner_ids: Iterable[int]) -> bool:
    user_id = getattr(user, "id", None)
    return user_id is not None and user_id in set(owner_ids)


def has_role(user: Any, role_id: Optional[int]) -> bool:
    """
    Check if user carries the role with ``role_id``.

    Plain ``discord.User`` objects (DM context) have no roles and never match.
    """
    if role_id is None:
        return False

    roles = getattr(user, "roles", None)
    if not roles:
        return False

    try:
        return any(getattr(role, "id", None) == role_id for role in roles)
    except TypeError:
        return False


def is_moderator(user: Any, *, mod_role_id: Optional[int] = None, owner_ids: Iterable[int] = ()) -> bool:
    return (
        is_administrator(user) or
        has_role(user, mod_role_id) or
        is_bot_owner(user, owner_ids)
    )


def reviewer_from(
    user: discord.abc.User,
    *,
    mod_role_id: Optional[int] = None,
    owner_ids: Iterable[int] = (),
) -> Reviewer:
    return Reviewer(
        user_id=user.id,
        tag=str(user),
        is_moderator=is_moderator(user, mod_role_id=mod_role_id, owner_ids=owner_ids),
    )
