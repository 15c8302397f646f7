"""
Storage Engine for the tierlist.

Typed repository over SQLite for submissions, ratings, cooldowns and the
small config document (tier labels, leaderboard message pointer). Every write
commits before returning; callers that need several writes to land together
wrap them in ``transaction()``.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .classifier import TIER_COUNT
from .errors import StorageError
from .models import Rating, Submission, SubmissionStatus

logger = logging.getLogger(__name__)

DEFAULT_TIER_LABELS: Dict[int, str] = {tier: str(tier) for tier in range(1, TIER_COUNT + 1)}
TIER_LABEL_MAX_LENGTH = 100

_TIER_LABELS_KEY = "tier_labels"
_INDEX_MESSAGE_KEY = "index_message_id"


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_int(value: Any) -> Optional[int]:
    return int(value) if value is not None else None


class TierlistStorageEngine:
    """Manages persistence of submissions, ratings and cooldowns."""

    def __init__(self, db_path: str = "data/tierlist.db") -> None:
        self.db_path = db_path
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._tx_depth = 0
        self._ensure_tables()

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Schema + transactions
    # ------------------------------------------------------------------

    def _ensure_tables(self) -> None:
        with self.transaction() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS submissions (
                    id TEXT PRIMARY KEY,
                    member_id INTEGER NOT NULL,
                    display_name TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    tier INTEGER,
                    proof_url TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    status TEXT NOT NULL,
                    reviewed_by TEXT,
                    reviewed_at TEXT,
                    reject_reason TEXT,
                    message_url TEXT,
                    review_channel_id INTEGER,
                    review_message_id INTEGER,
                    review_image TEXT
                )
            """)
            # One pending submission per member.
            conn.execute("""
                CREATE UNIQUE INDEX IF NOT EXISTS idx_submissions_one_pending
                ON submissions(member_id) WHERE status = 'pending'
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_submissions_status
                ON submissions(status, created_at)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS ratings (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    member_id INTEGER NOT NULL UNIQUE,
                    display_name TEXT NOT NULL,
                    score INTEGER NOT NULL,
                    tier INTEGER NOT NULL,
                    proof_url TEXT NOT NULL,
                    avatar_url TEXT,
                    last_updated TEXT NOT NULL,
                    card_message_id INTEGER
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cooldowns (
                    member_id INTEGER PRIMARY KEY,
                    accepted_at TEXT NOT NULL
                )
            """)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group writes; only the outermost block commits or rolls back."""
        outermost = self._tx_depth == 0
        self._tx_depth += 1
        try:
            yield self._conn
        except sqlite3.Error as exc:
            if outermost:
                self._conn.rollback()
            logger.error("Tierlist storage write failed: %s", exc)
            raise StorageError() from exc
        except BaseException:
            if outermost:
                self._conn.rollback()
            raise
        else:
            if outermost:
                try:
                    self._conn.commit()
                except sqlite3.Error as exc:
                    self._conn.rollback()
                    logger.error("Tierlist storage commit failed: %s", exc)
                    raise StorageError() from exc
        finally:
            self._tx_depth -= 1

    # ------------------------------------------------------------------
    # Submissions
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_submission(row: sqlite3.Row) -> Submission:
        return Submission(
            id=row["id"],
            member_id=int(row["member_id"]),
            display_name=row["display_name"],
            score=int(row["score"]),
            tier=_to_int(row["tier"]),
            proof_url=row["proof_url"],
            created_at=_from_iso(row["created_at"]),
            status=SubmissionStatus(row["status"]),
            reviewed_by=row["reviewed_by"],
            reviewed_at=_from_iso(row["reviewed_at"]),
            reject_reason=row["reject_reason"],
            message_url=row["message_url"],
            review_channel_id=_to_int(row["review_channel_id"]),
            review_message_id=_to_int(row["review_message_id"]),
            review_image=row["review_image"],
        )

    def get_submission(self, submission_id: str) -> Optional[Submission]:
        row = self._conn.execute(
            "SELECT * FROM submissions WHERE id = ?", (submission_id,)
        ).fetchone()
        return self._row_to_submission(row) if row else None

    def save_submission(self, submission: Submission) -> None:
        with self.transaction() as conn:
            conn.execute("""
                INSERT INTO submissions
                (id, member_id, display_name, score, tier, proof_url, created_at, status,
                 reviewed_by, reviewed_at, reject_reason, message_url,
                 review_channel_id, review_message_id, review_image)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    display_name = excluded.display_name,
                    score = excluded.score,
                    tier = excluded.tier,
                    proof_url = excluded.proof_url,
                    status = excluded.status,
                    reviewed_by = excluded.reviewed_by,
                    reviewed_at = excluded.reviewed_at,
                    reject_reason = excluded.reject_reason,
                    message_url = excluded.message_url,
                    review_channel_id = excluded.review_channel_id,
                    review_message_id = excluded.review_message_id,
                    review_image = excluded.review_image
            """, (
                submission.id,
                submission.member_id,
                submission.display_name,
                submission.score,
                submission.tier,
                submission.proof_url,
                _to_iso(submission.created_at),
                submission.status.value,
                submission.reviewed_by,
                _to_iso(submission.reviewed_at),
                submission.reject_reason,
                submission.message_url,
                submission.review_channel_id,
                submission.review_message_id,
                submission.review_image,
            ))

    def find_pending_for_member(self, member_id: int) -> Optional[Submission]:
        row = self._conn.execute(
            "SELECT * FROM submissions WHERE member_id = ? AND status = ?",
            (member_id, SubmissionStatus.PENDING.value),
        ).fetchone()
        return self._row_to_submission(row) if row else None

    def list_submissions(self, status: Optional[SubmissionStatus] = None) -> List[Submission]:
        """Newest first."""
        if status is None:
            rows = self._conn.execute(
                "SELECT * FROM submissions ORDER BY created_at DESC"
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT * FROM submissions WHERE status = ? ORDER BY created_at DESC",
                (status.value,),
            ).fetchall()
        return [self._row_to_submission(row) for row in rows]

    def delete_resolved_before(self, cutoff: datetime) -> int:
        with self.transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM submissions WHERE status != ? AND created_at < ?",
                (SubmissionStatus.PENDING.value, _to_iso(cutoff)),
            )
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    @staticmethod
    def _row_to_rating(row: sqlite3.Row) -> Rating:
        return Rating(
            member_id=int(row["member_id"]),
            display_name=row["display_name"],
            score=int(row["score"]),
            tier=int(row["tier"]),
            proof_url=row["proof_url"],
            last_updated=_from_iso(row["last_updated"]),
            avatar_url=row["avatar_url"],
            card_message_id=_to_int(row["card_message_id"]),
        )

    def get_rating(self, member_id: int) -> Optional[Rating]:
        row = self._conn.execute(
            "SELECT * FROM ratings WHERE member_id = ?", (member_id,)
        ).fetchone()
        return self._row_to_rating(row) if row else None

    def list_ratings(self) -> List[Rating]:
        """Ratings in first-published order (``seq`` survives updates)."""
        rows = self._conn.execute("SELECT * FROM ratings ORDER BY seq").fetchall()
        return [self._row_to_rating(row) for row in rows]

    def save_rating(self, rating: Rating) -> None:
        with self.transaction() as conn:
            conn.execute("""
                INSERT INTO ratings
                (member_id, display_name, score, tier, proof_url, avatar_url, last_updated, card_message_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(member_id) DO UPDATE SET
                    display_name = excluded.display_name,
                    score = excluded.score,
                    tier = excluded.tier,
                    proof_url = excluded.proof_url,
                    avatar_url = excluded.avatar_url,
                    last_updated = excluded.last_updated,
                    card_message_id = excluded.card_message_id
            """, (
                rating.member_id,
                rating.display_name,
                rating.score,
                rating.tier,
                rating.proof_url,
                rating.avatar_url,
                _to_iso(rating.last_updated),
                rating.card_message_id,
            ))

    def delete_rating(self, member_id: int) -> bool:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM ratings WHERE member_id = ?", (member_id,))
            return cursor.rowcount > 0

    def delete_ratings(self, member_ids: Iterable[int]) -> int:
        ids = [(member_id,) for member_id in member_ids]
        if not ids:
            return 0
        with self.transaction() as conn:
            cursor = conn.executemany("DELETE FROM ratings WHERE member_id = ?", ids)
            return cursor.rowcount

    # ------------------------------------------------------------------
    # Cooldowns
    # ------------------------------------------------------------------

    def get_cooldown(self, member_id: int) -> Optional[datetime]:
        row = self._conn.execute(
            "SELECT accepted_at FROM cooldowns WHERE member_id = ?", (member_id,)
        ).fetchone()
        return _from_iso(row["accepted_at"]) if row else None

    def set_cooldown(self, member_id: int, accepted_at: datetime) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO cooldowns (member_id, accepted_at) VALUES (?, ?)
                ON CONFLICT(member_id) DO UPDATE SET accepted_at = excluded.accepted_at
                """,
                (member_id, _to_iso(accepted_at)),
            )

    # ------------------------------------------------------------------
    # Config document
    # ------------------------------------------------------------------

    def get_config(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute("SELECT value FROM config WHERE key = ?", (key,)).fetchone()
        if not row:
            return default
        return json.loads(row["value"])

    def set_config(self, key: str, value: Any) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                INSERT INTO config (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, json.dumps(value)),
            )

    def get_tier_labels(self) -> Dict[int, str]:
        stored = self.get_config(_TIER_LABELS_KEY) or {}
        labels = dict(DEFAULT_TIER_LABELS)
        for key, value in stored.items():
            try:
                tier = int(key)
            except (TypeError, ValueError):
                continue
            if tier in labels and value:
                labels[tier] = str(value)
        return labels

    def set_tier_labels(self, labels: Mapping[int, str]) -> Dict[int, str]:
        cleaned = dict(DEFAULT_TIER_LABELS)
        for tier in cleaned:
            value = (labels.get(tier) or "").strip()
            if value:
                cleaned[tier] = value[:TIER_LABEL_MAX_LENGTH]
        self.set_config(_TIER_LABELS_KEY, {str(tier): label for tier, label in cleaned.items()})
        return cleaned

    def get_index_message_id(self) -> Optional[int]:
        return _to_int(self.get_config(_INDEX_MESSAGE_KEY))

    def set_index_message_id(self, message_id: Optional[int]) -> None:
        self.set_config(_INDEX_MESSAGE_KEY, message_id)


__all__ = ["DEFAULT_TIER_LABELS", "TierlistStorageEngine"]
