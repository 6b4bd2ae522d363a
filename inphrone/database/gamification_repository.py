"""Streak and badge persistence."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite

from inphrone.database.base_repository import BaseRepository
from inphrone.database.models import Badge, StreakRecord

_STREAK_COLUMNS = (
    "user_id, current_streak_weeks, longest_streak_weeks, streak_tier, "
    "total_weekly_contributions, last_activity_date, inphrosync_streak_days, "
    "inphrosync_longest_streak, inphrosync_last_participation"
)


class GamificationRepository(BaseRepository):
    """Repository for weekly streaks, InphroSync day streaks and badges."""

    @staticmethod
    async def get_streak(user_id: str) -> Optional[StreakRecord]:
        row = await BaseRepository.fetch_one(
            f"SELECT {_STREAK_COLUMNS} FROM user_streaks WHERE user_id=?",
            (user_id,),
        )
        return StreakRecord.from_row(row) if row else None

    @staticmethod
    async def lock_streak(conn: aiosqlite.Connection, user_id: str) -> Optional[StreakRecord]:
        """Read the streak row inside a write transaction."""
        cursor = await conn.execute(
            f"SELECT {_STREAK_COLUMNS} FROM user_streaks WHERE user_id=?",
            (user_id,),
        )
        row = await cursor.fetchone()
        return StreakRecord.from_row(row) if row else None

    @staticmethod
    async def save_streak(conn: aiosqlite.Connection, record: StreakRecord, now: datetime) -> None:
        """Upsert the full streak row. Call with the connection that read it."""
        await conn.execute(
            f"""
            INSERT INTO user_streaks ({_STREAK_COLUMNS}, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                current_streak_weeks=excluded.current_streak_weeks,
                longest_streak_weeks=excluded.longest_streak_weeks,
                streak_tier=excluded.streak_tier,
                total_weekly_contributions=excluded.total_weekly_contributions,
                last_activity_date=excluded.last_activity_date,
                inphrosync_streak_days=excluded.inphrosync_streak_days,
                inphrosync_longest_streak=excluded.inphrosync_longest_streak,
                inphrosync_last_participation=excluded.inphrosync_last_participation,
                updated_at=excluded.updated_at
            """,
            (
                record.user_id,
                record.current_streak_weeks,
                record.longest_streak_weeks,
                record.streak_tier,
                record.total_weekly_contributions,
                record.last_activity_date.isoformat() if record.last_activity_date else None,
                record.inphrosync_streak_days,
                record.inphrosync_longest_streak,
                record.inphrosync_last_participation.isoformat()
                if record.inphrosync_last_participation else None,
                now.isoformat(),
            ),
        )

    @staticmethod
    async def insert_badge(
        user_id: str,
        badge_type: str,
        badge_name: str,
        badge_description: Optional[str],
        metadata: Dict[str, Any],
        now: datetime,
    ) -> bool:
        """Award a badge once per (user, type). False when already held."""
        affected = await BaseRepository.execute(
            """
            INSERT OR IGNORE INTO user_badges
            (user_id, badge_type, badge_name, badge_description, metadata, earned_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (user_id, badge_type, badge_name, badge_description, json.dumps(metadata), now.isoformat()),
        )
        return affected == 1

    @staticmethod
    async def list_badges(user_id: str) -> List[Badge]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT id, user_id, badge_type, badge_name, badge_description, metadata, earned_at
            FROM user_badges WHERE user_id=? ORDER BY earned_at DESC, id DESC
            """,
            (user_id,),
        )
        return [Badge.from_row(row) for row in rows]
