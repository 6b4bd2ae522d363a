"""Persistence for Your Turn slots, attempts, questions, votes and history."""

from __future__ import annotations

import json
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import aiosqlite

from inphrone.core.constants import SlotStatus
from inphrone.database.base_repository import BaseRepository
from inphrone.database.models import (
    Attempt,
    HistoryEntry,
    Question,
    QuestionOption,
    Slot,
)

_SLOT_COLUMNS = (
    "id, slot_date, slot_time, status, attempt_count, winner_id, "
    "opened_at, resolved_at, archived_at"
)

_QUESTION_SELECT = """
    SELECT q.id, q.slot_id, q.user_id, q.question_text, q.total_votes,
           q.is_deleted, q.deletion_reason, q.created_at, p.full_name AS winner_name
    FROM your_turn_questions q
    LEFT JOIN profiles p ON p.id = q.user_id
"""


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join(["?"] * len(values))


class YourTurnRepository(BaseRepository):
    """Repository for the Your Turn slot state machine.

    Methods taking ``conn`` run inside a caller-owned
    :meth:`BaseRepository.write_transaction`; the rest use their own
    pooled connection.
    """

    # Slots

    @staticmethod
    async def ensure_slots(slot_date: date, times: Iterable[str]) -> int:
        """Create the day's slots if missing. Returns how many were created."""
        created = 0
        async with BaseRepository.write_transaction() as conn:
            for slot_time in times:
                cursor = await conn.execute(
                    "INSERT OR IGNORE INTO your_turn_slots (slot_date, slot_time) VALUES (?, ?)",
                    (slot_date.isoformat(), slot_time),
                )
                created += cursor.rowcount
        return created

    @staticmethod
    async def get_slot(slot_id: int) -> Optional[Slot]:
        row = await BaseRepository.fetch_one(
            f"SELECT {_SLOT_COLUMNS} FROM your_turn_slots WHERE id=?",
            (slot_id,),
        )
        return Slot.from_row(row) if row else None

    @staticmethod
    async def lock_slot(conn: aiosqlite.Connection, slot_id: int) -> Optional[Slot]:
        """Read a slot inside an open write transaction."""
        cursor = await conn.execute(
            f"SELECT {_SLOT_COLUMNS} FROM your_turn_slots WHERE id=?",
            (slot_id,),
        )
        row = await cursor.fetchone()
        return Slot.from_row(row) if row else None

    @staticmethod
    async def get_slots_for_date(slot_date: date) -> List[Slot]:
        rows = await BaseRepository.fetch_all(
            f"SELECT {_SLOT_COLUMNS} FROM your_turn_slots WHERE slot_date=? ORDER BY slot_time",
            (slot_date.isoformat(),),
        )
        return [Slot.from_row(row) for row in rows]

    @staticmethod
    async def list_upcoming(from_date: date, limit: int = 20) -> List[Slot]:
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT {_SLOT_COLUMNS} FROM your_turn_slots
            WHERE slot_date >= ?
            ORDER BY slot_date, slot_time
            LIMIT ?
            """,
            (from_date.isoformat(), limit),
        )
        return [Slot.from_row(row) for row in rows]

    @staticmethod
    async def list_by_status(statuses: Sequence[SlotStatus], up_to: date) -> List[Slot]:
        """Slots in any of ``statuses`` dated on or before ``up_to``."""
        values = [status.value for status in statuses]
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT {_SLOT_COLUMNS} FROM your_turn_slots
            WHERE status IN ({_placeholders(values)}) AND slot_date <= ?
            ORDER BY slot_date, slot_time
            """,
            (*values, up_to.isoformat()),
        )
        return [Slot.from_row(row) for row in rows]

    @staticmethod
    async def list_resolved_before(before: date) -> List[Slot]:
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT {_SLOT_COLUMNS} FROM your_turn_slots
            WHERE status IN ('won', 'expired') AND slot_date < ?
            ORDER BY slot_date, slot_time
            """,
            (before.isoformat(),),
        )
        return [Slot.from_row(row) for row in rows]

    @staticmethod
    async def mark_open(conn: aiosqlite.Connection, slot_id: int, now: datetime) -> bool:
        cursor = await conn.execute(
            "UPDATE your_turn_slots SET status='open', opened_at=? WHERE id=? AND status='scheduled'",
            (now.isoformat(), slot_id),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def mark_expired(conn: aiosqlite.Connection, slot_id: int, now: datetime) -> bool:
        cursor = await conn.execute(
            "UPDATE your_turn_slots SET status='expired', resolved_at=? WHERE id=? AND status='open'",
            (now.isoformat(), slot_id),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def mark_won(
        conn: aiosqlite.Connection,
        slot_id: int,
        user_id: str,
        now: datetime,
    ) -> bool:
        """Compare-and-set ``open -> won``. False when another claim got there first."""
        cursor = await conn.execute(
            """
            UPDATE your_turn_slots
            SET status='won', winner_id=?, attempt_count=attempt_count+1, resolved_at=?
            WHERE id=? AND status='open'
            """,
            (user_id, now.isoformat(), slot_id),
        )
        if cursor.rowcount != 1:
            return False
        await conn.execute(
            """
            INSERT INTO your_turn_attempts (slot_id, user_id, attempted_at, is_winner)
            VALUES (?, ?, ?, 1)
            """,
            (slot_id, user_id, now.isoformat()),
        )
        return True

    @staticmethod
    async def record_losing_attempt(
        conn: aiosqlite.Connection,
        slot_id: int,
        user_id: str,
        now: datetime,
    ) -> bool:
        """Record a user's first losing attempt. False when one already exists."""
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO your_turn_attempts (slot_id, user_id, attempted_at, is_winner)
            VALUES (?, ?, ?, 0)
            """,
            (slot_id, user_id, now.isoformat()),
        )
        if cursor.rowcount != 1:
            return False
        await conn.execute(
            "UPDATE your_turn_slots SET attempt_count=attempt_count+1 WHERE id=?",
            (slot_id,),
        )
        return True

    @staticmethod
    async def get_attempts(slot_id: int) -> List[Attempt]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT id, slot_id, user_id, attempted_at, is_winner
            FROM your_turn_attempts WHERE slot_id=? ORDER BY id
            """,
            (slot_id,),
        )
        return [Attempt.from_row(row) for row in rows]

    @staticmethod
    async def user_attempts(user_id: str, slot_ids: Sequence[int]) -> Dict[int, Attempt]:
        if not slot_ids:
            return {}
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT id, slot_id, user_id, attempted_at, is_winner
            FROM your_turn_attempts
            WHERE user_id=? AND slot_id IN ({_placeholders(slot_ids)})
            """,
            (user_id, *slot_ids),
        )
        return {row["slot_id"]: Attempt.from_row(row) for row in rows}

    # Questions

    @staticmethod
    async def insert_question(
        conn: aiosqlite.Connection,
        slot_id: int,
        user_id: str,
        question_text: str,
        labels: Sequence[str],
        now: datetime,
    ) -> Optional[int]:
        """Insert a question and its options. None when the slot already has one."""
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO your_turn_questions (slot_id, user_id, question_text, created_at)
            VALUES (?, ?, ?, ?)
            """,
            (slot_id, user_id, question_text, now.isoformat()),
        )
        if cursor.rowcount != 1:
            return None
        question_id = cursor.lastrowid
        await conn.executemany(
            """
            INSERT INTO your_turn_options (question_id, option_id, label, position)
            VALUES (?, ?, ?, ?)
            """,
            [
                (question_id, f"opt{position + 1}", label, position)
                for position, label in enumerate(labels)
            ],
        )
        return question_id

    @staticmethod
    async def _attach_options(rows: Sequence[Mapping[str, Any]]) -> List[Question]:
        if not rows:
            return []
        question_ids = [row["id"] for row in rows]
        option_rows = await BaseRepository.fetch_all(
            f"""
            SELECT question_id, option_id, label, votes FROM your_turn_options
            WHERE question_id IN ({_placeholders(question_ids)})
            ORDER BY question_id, position
            """,
            tuple(question_ids),
        )
        options: Dict[int, List[QuestionOption]] = {qid: [] for qid in question_ids}
        for opt in option_rows:
            options[opt["question_id"]].append(
                QuestionOption(option_id=opt["option_id"], label=opt["label"], votes=opt["votes"])
            )
        return [
            Question(
                id=row["id"],
                slot_id=row["slot_id"],
                user_id=row["user_id"],
                question_text=row["question_text"],
                options=options[row["id"]],
                total_votes=row["total_votes"],
                is_deleted=bool(row["is_deleted"]),
                deletion_reason=row["deletion_reason"],
                created_at=datetime.fromisoformat(row["created_at"]),
                winner_name=row["winner_name"],
            )
            for row in rows
        ]

    @staticmethod
    async def get_question(question_id: int) -> Optional[Question]:
        rows = await BaseRepository.fetch_all(f"{_QUESTION_SELECT} WHERE q.id=?", (question_id,))
        questions = await YourTurnRepository._attach_options(rows)
        return questions[0] if questions else None

    @staticmethod
    async def get_question_by_slot(slot_id: int) -> Optional[Question]:
        rows = await BaseRepository.fetch_all(f"{_QUESTION_SELECT} WHERE q.slot_id=?", (slot_id,))
        questions = await YourTurnRepository._attach_options(rows)
        return questions[0] if questions else None

    @staticmethod
    async def questions_for_slots(slot_ids: Sequence[int]) -> List[Question]:
        if not slot_ids:
            return []
        rows = await BaseRepository.fetch_all(
            f"""
            {_QUESTION_SELECT}
            WHERE q.slot_id IN ({_placeholders(slot_ids)}) AND q.is_deleted = 0
            ORDER BY q.created_at DESC
            """,
            tuple(slot_ids),
        )
        return await YourTurnRepository._attach_options(rows)

    @staticmethod
    async def list_questions(limit: int = 50, include_deleted: bool = True) -> List[Question]:
        where = "" if include_deleted else "WHERE q.is_deleted = 0"
        rows = await BaseRepository.fetch_all(
            f"{_QUESTION_SELECT} {where} ORDER BY q.created_at DESC LIMIT ?",
            (limit,),
        )
        return await YourTurnRepository._attach_options(rows)

    @staticmethod
    async def soft_delete_question(
        question_id: int,
        actor: str,
        reason: str,
        now: datetime,
    ) -> bool:
        affected = await BaseRepository.execute(
            """
            UPDATE your_turn_questions
            SET is_deleted=1, deleted_by=?, deleted_at=?, deletion_reason=?
            WHERE id=? AND is_deleted=0
            """,
            (actor, now.isoformat(), reason, question_id),
        )
        return affected == 1

    # Votes

    @staticmethod
    async def lock_vote_target(
        conn: aiosqlite.Connection,
        question_id: int,
        option_id: str,
    ) -> Optional[Mapping[str, Any]]:
        """Question state needed to accept a vote: deletion flag, slot status, option match."""
        cursor = await conn.execute(
            """
            SELECT q.id, q.is_deleted, s.status AS slot_status,
                   EXISTS (
                       SELECT 1 FROM your_turn_options o
                       WHERE o.question_id = q.id AND o.option_id = ?
                   ) AS has_option
            FROM your_turn_questions q
            JOIN your_turn_slots s ON s.id = q.slot_id
            WHERE q.id=?
            """,
            (option_id, question_id),
        )
        return await cursor.fetchone()

    @staticmethod
    async def record_vote(
        conn: aiosqlite.Connection,
        question_id: int,
        user_id: str,
        option_id: str,
        now: datetime,
    ) -> bool:
        """Insert the vote and bump tallies. False when the user already voted."""
        cursor = await conn.execute(
            """
            INSERT OR IGNORE INTO your_turn_votes (question_id, user_id, option_id, voted_at)
            VALUES (?, ?, ?, ?)
            """,
            (question_id, user_id, option_id, now.isoformat()),
        )
        if cursor.rowcount != 1:
            return False
        await conn.execute(
            "UPDATE your_turn_options SET votes=votes+1 WHERE question_id=? AND option_id=?",
            (question_id, option_id),
        )
        await conn.execute(
            "UPDATE your_turn_questions SET total_votes=total_votes+1 WHERE id=?",
            (question_id,),
        )
        return True

    @staticmethod
    async def user_votes(user_id: str, question_ids: Sequence[int]) -> Dict[int, str]:
        if not question_ids:
            return {}
        rows = await BaseRepository.fetch_all(
            f"""
            SELECT question_id, option_id FROM your_turn_votes
            WHERE user_id=? AND question_id IN ({_placeholders(question_ids)})
            """,
            (user_id, *question_ids),
        )
        return {row["question_id"]: row["option_id"] for row in rows}

    # Archive

    @staticmethod
    async def archive_slot(conn: aiosqlite.Connection, slot_id: int, now: datetime) -> bool:
        """Snapshot the slot into history and mark it archived.

        The snapshot is read inside the same transaction as the status change,
        so the archived tallies are final.
        """
        cursor = await conn.execute(
            f"SELECT {_SLOT_COLUMNS} FROM your_turn_slots WHERE id=?",
            (slot_id,),
        )
        row = await cursor.fetchone()
        if row is None:
            return False
        slot = Slot.from_row(row)
        if slot.status not in (SlotStatus.WON, SlotStatus.EXPIRED):
            return False

        cursor = await conn.execute(
            """
            SELECT q.id, q.question_text, q.total_votes, p.full_name AS winner_name
            FROM your_turn_questions q
            LEFT JOIN profiles p ON p.id = q.user_id
            WHERE q.slot_id=? AND q.is_deleted=0
            """,
            (slot_id,),
        )
        question = await cursor.fetchone()
        options: List[Dict[str, Any]] = []
        if question is not None:
            cursor = await conn.execute(
                "SELECT option_id, label, votes FROM your_turn_options WHERE question_id=? ORDER BY position",
                (question["id"],),
            )
            options = [
                {"id": opt["option_id"], "label": opt["label"], "votes": opt["votes"]}
                async for opt in cursor
            ]

        winner_name = None
        if slot.winner_id is not None:
            cursor = await conn.execute("SELECT full_name FROM profiles WHERE id=?", (slot.winner_id,))
            profile = await cursor.fetchone()
            winner_name = (profile["full_name"] if profile else None) or "Anonymous"

        await conn.execute(
            """
            INSERT OR IGNORE INTO your_turn_history (
                slot_id, slot_date, slot_time, final_status, winner_id, winner_name,
                question_text, options, total_votes, attempt_count, archived_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                slot.id,
                slot.slot_date.isoformat(),
                slot.slot_time,
                slot.status.value,
                slot.winner_id,
                winner_name,
                question["question_text"] if question else None,
                json.dumps(options),
                question["total_votes"] if question else 0,
                slot.attempt_count,
                now.isoformat(),
            ),
        )
        cursor = await conn.execute(
            """
            UPDATE your_turn_slots SET status='archived', archived_at=?
            WHERE id=? AND status IN ('won', 'expired')
            """,
            (now.isoformat(), slot_id),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def list_history(limit: int = 50) -> List[HistoryEntry]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT id, slot_id, slot_date, slot_time, final_status, winner_id, winner_name,
                   question_text, options, total_votes, attempt_count, archived_at
            FROM your_turn_history
            ORDER BY archived_at DESC, id DESC
            LIMIT ?
            """,
            (limit,),
        )
        return [HistoryEntry.from_row(row) for row in rows]
