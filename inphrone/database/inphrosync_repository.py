"""InphroSync daily poll persistence."""

from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional

from inphrone.database.base_repository import BaseRepository
from inphrone.database.models import PollQuestion


class InphroSyncRepository(BaseRepository):
    """Repository for daily poll questions and responses."""

    @staticmethod
    async def get_active_questions() -> List[PollQuestion]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT id, question_type, question_text, options, display_order
            FROM inphrosync_questions
            WHERE is_active=1
            ORDER BY display_order, id
            """
        )
        return [PollQuestion.from_row(row) for row in rows]

    @staticmethod
    async def get_question(question_type: str) -> Optional[PollQuestion]:
        row = await BaseRepository.fetch_one(
            """
            SELECT id, question_type, question_text, options, display_order
            FROM inphrosync_questions
            WHERE question_type=? AND is_active=1
            """,
            (question_type,),
        )
        return PollQuestion.from_row(row) if row else None

    @staticmethod
    async def insert_response(
        user_id: str,
        question_type: str,
        selected_option: str,
        response_date: date,
    ) -> bool:
        """Store a response. False when the user already answered that day."""
        affected = await BaseRepository.execute(
            """
            INSERT OR IGNORE INTO inphrosync_responses
            (user_id, question_type, selected_option, response_date)
            VALUES (?, ?, ?, ?)
            """,
            (user_id, question_type, selected_option, response_date.isoformat()),
        )
        return affected == 1

    @staticmethod
    async def option_counts(response_date: date) -> Dict[str, Dict[str, int]]:
        """``{question_type: {option: count}}`` for one day."""
        rows = await BaseRepository.fetch_all(
            """
            SELECT question_type, selected_option, COUNT(*) AS total
            FROM inphrosync_responses
            WHERE response_date=?
            GROUP BY question_type, selected_option
            """,
            (response_date.isoformat(),),
        )
        counts: Dict[str, Dict[str, int]] = {}
        for row in rows:
            counts.setdefault(row["question_type"], {})[row["selected_option"]] = row["total"]
        return counts

    @staticmethod
    async def answered_types(user_id: str, response_date: date) -> List[str]:
        return await BaseRepository.fetch_column(
            "SELECT question_type FROM inphrosync_responses WHERE user_id=? AND response_date=?",
            (user_id, response_date.isoformat()),
        )
