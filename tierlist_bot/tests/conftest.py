from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
import sys
from typing import List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from tierlist_bot.config import TierlistBotConfig  # noqa: E402
from tierlist_bot.core.classifier import TierThresholds  # noqa: E402
from tierlist_bot.core.event_bus import EventBus  # noqa: E402
from tierlist_bot.core.intake_gate import IntakeGate  # noqa: E402
from tierlist_bot.core.models import ProofAttachment, Reviewer, SubmissionCandidate  # noqa: E402
from tierlist_bot.core.rating_store import RatingStore  # noqa: E402
from tierlist_bot.core.storage_engine import TierlistStorageEngine  # noqa: E402
from tierlist_bot.core.submission_engine import SubmissionEngine  # noqa: E402


class FakeClock:
    """Callable clock that tests move forward by hand."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def sample_config() -> TierlistBotConfig:
    return TierlistBotConfig(
        discord_token="testing-token",
        guild_id=1,
        submit_channel_id=10,
        review_channel_id=20,
        tierlist_channel_id=30,
        log_channel_id=40,
        mod_role_id=500,
        tierlist_role_id=600,
        owner_ids={1},
        db_path=":memory:",
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def thresholds() -> TierThresholds:
    return TierThresholds()


@pytest.fixture()
def storage():
    engine = TierlistStorageEngine(":memory:")
    yield engine
    engine.close()


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def ratings(storage, thresholds, event_bus, clock) -> RatingStore:
    return RatingStore(storage, thresholds, event_bus, clock=clock)


@pytest.fixture()
def intake(storage, thresholds, clock) -> IntakeGate:
    return IntakeGate(storage, thresholds, cooldown=timedelta(seconds=120), clock=clock)


@pytest.fixture()
def engine(storage, ratings, thresholds, event_bus, clock) -> SubmissionEngine:
    return SubmissionEngine(
        storage,
        ratings,
        thresholds,
        event_bus,
        expiry=timedelta(hours=48),
        retention=timedelta(days=7),
        clock=clock,
    )


@pytest.fixture()
def moderator() -> Reviewer:
    return Reviewer(user_id=900, tag="mod#0001", is_moderator=True)


@pytest.fixture()
def player() -> Reviewer:
    return Reviewer(user_id=42, tag="player#0042", is_moderator=False)


def make_candidate(
    text: str = "73",
    *,
    member_id: int = 42,
    display_name: str = "Player",
    url: Optional[str] = "https://cdn.example.com/shot.png",
    content_type: Optional[str] = "image/png",
    filename: str = "shot.png",
) -> SubmissionCandidate:
    proof = ProofAttachment(url=url, content_type=content_type, filename=filename) if url else None
    return SubmissionCandidate(
        member_id=member_id,
        display_name=display_name,
        text=text,
        proof=proof,
        message_url="https://discord.com/channels/1/10/99",
    )


class Recorder:
    """Async event handler that remembers every payload it receives."""

    def __init__(self) -> None:
        self.calls: List[dict] = []

    async def __call__(self, **payload) -> None:
        self.calls.append(payload)


@dataclass
class DummyRole:
    id: int
    name: str = "role"


@dataclass(eq=False)
class DummyMember:
    id: int
    roles: List[DummyRole] = field(default_factory=list)
    display_name: str = "TestUser"
    administrator: bool = False
    bot: bool = False

    @property
    def guild_permissions(self):
        return type("Permissions", (), {"administrator": self.administrator})()

    @property
    def name(self) -> str:
        return self.display_name

    def __str__(self) -> str:
        return self.display_name

    def __hash__(self) -> int:
        return hash(self.id)


__all__ = [
    "DummyMember",
    "DummyRole",
    "FakeClock",
    "Recorder",
    "make_candidate",
]
