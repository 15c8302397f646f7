"""Environment-backed configuration helpers for the tierlist bot."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional, Set, Tuple

from tierlist_bot.core.classifier import DEFAULT_TIER_FLOORS, TierThresholds


def _split_ints(value: str) -> Set[int]:
    ints: Set[int] = set()
    for chunk in (value or "").replace(";", ",").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ints.add(int(chunk))
        except ValueError:
            continue
    return ints


def _ordered_ints(value: str) -> List[int]:
    ordered: List[int] = []
    for chunk in (value or "").replace(";", ",").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        try:
            ordered.append(int(chunk))
        except ValueError:
            continue
    return ordered


def _optional_id(name: str) -> Optional[int]:
    ids = _ordered_ints(os.getenv(name, ""))
    return ids[0] if ids else None


def _int_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except ValueError:
        return default


@dataclass(slots=True)
class TierlistBotConfig:
    discord_token: str
    guild_id: Optional[int] = None
    submit_channel_id: Optional[int] = None
    review_channel_id: Optional[int] = None
    tierlist_channel_id: Optional[int] = None
    log_channel_id: Optional[int] = None
    mod_role_id: Optional[int] = None
    tierlist_role_id: Optional[int] = None
    owner_ids: Set[int] = field(default_factory=set)
    db_path: str = "data/tierlist.db"
    cooldown_seconds: int = 120
    expiry_hours: int = 48
    retention_days: int = 0
    tier_floors: Tuple[int, ...] = DEFAULT_TIER_FLOORS
    command_prefix: str = "!"
    log_level: str = "INFO"

    @property
    def cooldown(self) -> timedelta:
        return timedelta(seconds=self.cooldown_seconds)

    @property
    def expiry(self) -> timedelta:
        return timedelta(hours=self.expiry_hours)

    @property
    def retention(self) -> Optional[timedelta]:
        return timedelta(days=self.retention_days) if self.retention_days > 0 else None

    @property
    def thresholds(self) -> TierThresholds:
        return TierThresholds(tuple(self.tier_floors))

    @classmethod
    def from_env(cls) -> "TierlistBotConfig":
        token = os.getenv("DISCORD_TOKEN", "").strip()
        if not token:
            raise RuntimeError("DISCORD_TOKEN is required to run the bot")

        floors = tuple(_ordered_ints(os.getenv("TIER_FLOORS", "")))
        if floors:
            # Fail at startup rather than at the first submission.
            TierThresholds(floors)
        else:
            floors = DEFAULT_TIER_FLOORS

        return cls(
            discord_token=token,
            guild_id=_optional_id("GUILD_ID"),
            submit_channel_id=_optional_id("SUBMIT_CHANNEL_ID"),
            review_channel_id=_optional_id("REVIEW_CHANNEL_ID"),
            tierlist_channel_id=_optional_id("TIERLIST_CHANNEL_ID"),
            log_channel_id=_optional_id("LOG_CHANNEL_ID"),
            mod_role_id=_optional_id("MOD_ROLE_ID"),
            tierlist_role_id=_optional_id("TIERLIST_ROLE_ID"),
            owner_ids=_split_ints(os.getenv("OWNER_IDS", "")),
            db_path=os.getenv("DB_PATH", "").strip() or "data/tierlist.db",
            cooldown_seconds=max(0, _int_env("SUBMIT_COOLDOWN_SECONDS", 120)),
            expiry_hours=max(1, _int_env("PENDING_EXPIRE_HOURS", 48)),
            retention_days=max(0, _int_env("RETENTION_DAYS", 0)),
            tier_floors=floors,
            command_prefix=os.getenv("BOT_PREFIX", "!"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


__all__ = ["TierlistBotConfig"]
