"""Your Turn: three timed daily slots, first accepted claim wins.

The winner is decided by a compare-and-set on the slot row inside a
``BEGIN IMMEDIATE`` transaction. Client timestamps never arbitrate.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Sequence

import aiosqlite

from inphrone.core import get_logger
from inphrone.core.constants import (
    VIOLATION_LABELS,
    ClaimOutcome,
    EmailType,
    QuestionLimits,
    SlotDefaults,
    SlotStatus,
    SubmitOutcome,
    Tables,
    ViolationReason,
    VoteOutcome,
)
from inphrone.core.exceptions import NotFoundError, ServiceError, ValidationError
from inphrone.database.models import HistoryEntry, Question, Slot
from inphrone.database.your_turn_repository import YourTurnRepository
from inphrone.services.audit_service import AuditService
from inphrone.services.metrics import SLOT_CLAIMS, SLOT_TRANSITIONS
from inphrone.services.notification_service import NotificationService
from inphrone.services.realtime import ChangeFeed, FeedDisconnected, Subscription

logger = get_logger(__name__)


@dataclass(slots=True)
class ClaimResult:
    outcome: ClaimOutcome
    slot: Slot


@dataclass(slots=True)
class SubmitResult:
    outcome: SubmitOutcome
    question: Optional[Question] = None


@dataclass(slots=True)
class VoteResult:
    outcome: VoteOutcome
    question: Optional[Question] = None


@asynccontextmanager
async def _storage_guard(action: str) -> AsyncIterator[None]:
    """Surface storage failures as a retryable ServiceError."""
    try:
        yield
    except aiosqlite.Error as exc:
        logger.error("Storage failure during %s: %s", action, exc, exc_info=True)
        raise ServiceError("Something went wrong, try again") from exc


def slot_label(slot_time: str) -> str:
    hours, minutes = (int(part) for part in slot_time.split(":"))
    period = "AM" if hours < 12 else "PM"
    display_hour = hours % 12 or 12
    return f"{display_hour}:{minutes:02d} {period}"


class YourTurnService:
    """Slot state machine, question submission, voting and moderation."""

    def __init__(
        self,
        feed: ChangeFeed,
        notifications: NotificationService,
        clock: Callable[[], datetime],
        timezone: tzinfo,
        slot_times: Sequence[str] = SlotDefaults.TIMES,
        window_seconds: int = SlotDefaults.WINDOW_SECONDS,
        poll_interval: float = SlotDefaults.POLL_INTERVAL,
    ) -> None:
        self.feed = feed
        self.notifications = notifications
        self.clock = clock
        self.timezone = timezone
        self.slot_times = tuple(sorted(slot_times))
        self.window_seconds = window_seconds
        self.poll_interval = poll_interval

    def today(self, now: Optional[datetime] = None) -> date:
        return (now or self.clock()).astimezone(self.timezone).date()

    # Transitions

    async def _apply_clock(
        self,
        conn: aiosqlite.Connection,
        slot: Slot,
        now: datetime,
        transitions: List[SlotStatus],
    ) -> None:
        """Move a slot along the time-driven edges: scheduled -> open -> expired."""
        start = slot.window_start(self.timezone)
        end = slot.window_end(self.timezone, self.window_seconds)

        if slot.status == SlotStatus.SCHEDULED and now >= start:
            if await YourTurnRepository.mark_open(conn, slot.id, now):
                slot.status = SlotStatus.OPEN
                transitions.append(SlotStatus.OPEN)

        if slot.status == SlotStatus.OPEN and now >= end:
            if await YourTurnRepository.mark_expired(conn, slot.id, now):
                slot.status = SlotStatus.EXPIRED
                transitions.append(SlotStatus.EXPIRED)

    def _announce(self, slot_id: int, transitions: Sequence[SlotStatus]) -> None:
        for status in transitions:
            SLOT_TRANSITIONS.labels(to_status=status.value).inc()
            logger.info("Slot %s -> %s", slot_id, status.value)
        if transitions:
            self.feed.publish(Tables.SLOTS, slot_id, "UPDATE")

    async def advance_slot(self, slot_id: int, now: Optional[datetime] = None) -> List[SlotStatus]:
        """Apply any due time-driven transitions. Returns the statuses entered."""
        now = now or self.clock()
        transitions: List[SlotStatus] = []
        async with _storage_guard("advance"), YourTurnRepository.write_transaction() as conn:
            slot = await YourTurnRepository.lock_slot(conn, slot_id)
            if slot is not None:
                await self._apply_clock(conn, slot, now, transitions)
        self._announce(slot_id, transitions)
        return transitions

    async def archive_slot(self, slot_id: int, now: Optional[datetime] = None) -> bool:
        """Snapshot a resolved slot into history and move it to ``archived``."""
        now = now or self.clock()
        async with _storage_guard("archive"), YourTurnRepository.write_transaction() as conn:
            archived = await YourTurnRepository.archive_slot(conn, slot_id, now)
        if archived:
            self._announce(slot_id, [SlotStatus.ARCHIVED])
        return archived

    # Public contract

    async def get_slot(self, slot_id: int) -> Slot:
        slot = await YourTurnRepository.get_slot(slot_id)
        if slot is None:
            raise NotFoundError("Slot not found", redirect="/your-turn")
        return slot

    async def claim_slot(self, slot_id: int, user_id: str) -> ClaimResult:
        """Try to win a slot.

        The first claim inside the window wins. Everyone else who claims a won
        slot is recorded once as a losing attempt. Repeat calls change nothing.
        """
        now = self.clock()
        transitions: List[SlotStatus] = []
        attempt_recorded = False

        async with _storage_guard("claim"), YourTurnRepository.write_transaction() as conn:
            slot = await YourTurnRepository.lock_slot(conn, slot_id)
            if slot is None:
                raise NotFoundError("Slot not found", redirect="/your-turn")

            await self._apply_clock(conn, slot, now, transitions)

            if slot.status == SlotStatus.SCHEDULED:
                outcome = ClaimOutcome.NOT_OPEN
            elif slot.status == SlotStatus.OPEN:
                if await YourTurnRepository.mark_won(conn, slot.id, user_id, now):
                    outcome = ClaimOutcome.WON
                    attempt_recorded = True
                    transitions.append(SlotStatus.WON)
                else:
                    outcome = ClaimOutcome.ALREADY_TAKEN
            elif slot.status == SlotStatus.WON:
                if slot.winner_id == user_id:
                    outcome = ClaimOutcome.WON
                else:
                    outcome = ClaimOutcome.ALREADY_TAKEN
                    attempt_recorded = await YourTurnRepository.record_losing_attempt(
                        conn, slot.id, user_id, now
                    )
            elif slot.status == SlotStatus.EXPIRED:
                outcome = ClaimOutcome.EXPIRED
            elif slot.winner_id is None:
                outcome = ClaimOutcome.EXPIRED
            elif slot.winner_id == user_id:
                outcome = ClaimOutcome.WON
            else:
                outcome = ClaimOutcome.ALREADY_TAKEN

        SLOT_CLAIMS.labels(outcome=outcome.value).inc()
        if outcome == ClaimOutcome.WON and SlotStatus.WON in transitions:
            logger.info("User %s won slot %s", user_id, slot_id)
        elif outcome == ClaimOutcome.ALREADY_TAKEN:
            logger.debug("User %s lost slot %s", user_id, slot_id)

        self._announce(slot_id, transitions)
        if attempt_recorded:
            self.feed.publish(Tables.ATTEMPTS, slot_id, "INSERT")
            if SlotStatus.WON not in transitions:
                self.feed.publish(Tables.SLOTS, slot_id, "UPDATE")

        return ClaimResult(outcome=outcome, slot=await self.get_slot(slot_id))

    @staticmethod
    def _validate_question(text: str, options: Sequence[str]) -> tuple[str, List[str]]:
        if text is not None and not isinstance(text, str):
            raise ValidationError("Question must be text")
        if isinstance(options, str) or any(
            label is not None and not isinstance(label, str) for label in options or ()
        ):
            raise ValidationError("Options must be text labels")
        text = (text or "").strip()
        if not QuestionLimits.TEXT_MIN_LENGTH <= len(text) <= QuestionLimits.TEXT_MAX_LENGTH:
            raise ValidationError(
                f"Question must be {QuestionLimits.TEXT_MIN_LENGTH}-"
                f"{QuestionLimits.TEXT_MAX_LENGTH} characters"
            )
        labels = [(label or "").strip() for label in options or ()]
        if not QuestionLimits.MIN_OPTIONS <= len(labels) <= QuestionLimits.MAX_OPTIONS:
            raise ValidationError(
                f"Provide {QuestionLimits.MIN_OPTIONS} to {QuestionLimits.MAX_OPTIONS} options"
            )
        if any(not label for label in labels):
            raise ValidationError("Options cannot be empty")
        if any(len(label) > QuestionLimits.OPTION_MAX_LENGTH for label in labels):
            raise ValidationError(f"Options are limited to {QuestionLimits.OPTION_MAX_LENGTH} characters")
        if len({label.casefold() for label in labels}) != len(labels):
            raise ValidationError("Options must be unique")
        return text, labels

    async def submit_question(
        self,
        slot_id: int,
        user_id: str,
        text: str,
        options: Sequence[str],
    ) -> SubmitResult:
        """Store the winner's question. Only the recorded winner of a won slot succeeds."""
        text, labels = self._validate_question(text, options)
        now = self.clock()
        question_id: Optional[int] = None

        async with _storage_guard("submit"), YourTurnRepository.write_transaction() as conn:
            slot = await YourTurnRepository.lock_slot(conn, slot_id)
            if slot is None:
                raise NotFoundError("Slot not found", redirect="/your-turn")
            if slot.status == SlotStatus.ARCHIVED:
                outcome = SubmitOutcome.ALREADY_ARCHIVED
            elif slot.status != SlotStatus.WON or slot.winner_id != user_id:
                outcome = SubmitOutcome.UNAUTHORIZED
            else:
                question_id = await YourTurnRepository.insert_question(
                    conn, slot_id, user_id, text, labels, now
                )
                outcome = SubmitOutcome.CREATED if question_id else SubmitOutcome.ALREADY_SUBMITTED

        if question_id is None:
            logger.debug("Question submit on slot %s by %s: %s", slot_id, user_id, outcome.value)
            return SubmitResult(outcome=outcome, question=await YourTurnRepository.get_question_by_slot(slot_id))

        logger.info("Question %s created for slot %s", question_id, slot_id)
        self.feed.publish(Tables.QUESTIONS, question_id, "INSERT")
        return SubmitResult(outcome=outcome, question=await YourTurnRepository.get_question(question_id))

    async def vote(self, question_id: int, user_id: str, option_id: str) -> VoteResult:
        """Cast a single vote. Tallies only ever grow."""
        now = self.clock()
        async with _storage_guard("vote"), YourTurnRepository.write_transaction() as conn:
            target = await YourTurnRepository.lock_vote_target(conn, question_id, option_id)
            if target is None:
                raise NotFoundError("Question not found", redirect="/your-turn")
            if target["is_deleted"] or target["slot_status"] == SlotStatus.ARCHIVED.value:
                outcome = VoteOutcome.CLOSED
            elif not target["has_option"]:
                raise ValidationError(f"Unknown option: {option_id}")
            elif await YourTurnRepository.record_vote(conn, question_id, user_id, option_id, now):
                outcome = VoteOutcome.RECORDED
            else:
                outcome = VoteOutcome.ALREADY_VOTED

        if outcome == VoteOutcome.RECORDED:
            self.feed.publish(Tables.VOTES, question_id, "INSERT")
            self.feed.publish(Tables.QUESTIONS, question_id, "UPDATE")
        return VoteResult(outcome=outcome, question=await YourTurnRepository.get_question(question_id))

    def next_slot(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """The next slot start after ``now`` with a display label."""
        local = (now or self.clock()).astimezone(self.timezone)
        for slot_time in self.slot_times:
            hours, minutes = (int(part) for part in slot_time.split(":"))
            starts_at = datetime.combine(local.date(), time(hours, minutes), tzinfo=self.timezone)
            if local < starts_at:
                return {
                    "slot_time": slot_time,
                    "starts_at": starts_at.isoformat(),
                    "label": slot_label(slot_time),
                }

        first = self.slot_times[0]
        hours, minutes = (int(part) for part in first.split(":"))
        starts_at = datetime.combine(local.date() + timedelta(days=1), time(hours, minutes), tzinfo=self.timezone)
        return {
            "slot_time": first,
            "starts_at": starts_at.isoformat(),
            "label": f"{slot_label(first)} (Tomorrow)",
        }

    async def todays_board(self, user_id: str) -> Dict[str, Any]:
        """Today's slots and questions with the caller's attempts and votes."""
        now = self.clock()
        slots = await YourTurnRepository.get_slots_for_date(self.today(now))
        slot_ids = [slot.id for slot in slots]
        questions = await YourTurnRepository.questions_for_slots(slot_ids)
        attempts = await YourTurnRepository.user_attempts(user_id, slot_ids)
        votes = await YourTurnRepository.user_votes(user_id, [q.id for q in questions])

        slot_items = []
        for slot in slots:
            item = slot.to_dict()
            item["label"] = slot_label(slot.slot_time)
            item["window_end"] = slot.window_end(self.timezone, self.window_seconds).isoformat()
            item["has_attempted"] = slot.id in attempts
            item["is_winner"] = slot.winner_id == user_id
            slot_items.append(item)

        question_items = []
        for question in questions:
            item = question.to_dict()
            item["winner_name"] = question.winner_name or "Anonymous"
            item["my_vote"] = votes.get(question.id)
            question_items.append(item)

        return {
            "date": self.today(now).isoformat(),
            "slots": slot_items,
            "questions": question_items,
            "next_slot": self.next_slot(now),
        }

    async def observe_slot(self, slot_id: int) -> AsyncIterator[Slot]:
        """Yield the slot now and after every change to status, attempts or winner.

        Subscribes before the first read so no change between read and
        subscribe can be missed. While the feed is down, polls every
        ``poll_interval`` seconds and re-subscribes once it is back. Ends
        after yielding an archived slot.
        """
        subscription = self._try_subscribe(slot_id)
        last_state: Optional[tuple] = None
        try:
            while True:
                slot = await self.get_slot(slot_id)
                if slot.observable_state() != last_state:
                    last_state = slot.observable_state()
                    yield slot
                if slot.status == SlotStatus.ARCHIVED:
                    return

                if subscription is None:
                    await asyncio.sleep(self.poll_interval)
                    subscription = self._try_subscribe(slot_id)
                    continue

                try:
                    await subscription.wait()
                except FeedDisconnected:
                    logger.warning("Feed dropped while observing slot %s, polling", slot_id)
                    subscription.close()
                    subscription = None
        finally:
            if subscription is not None:
                subscription.close()

    def _try_subscribe(self, slot_id: int) -> Optional[Subscription]:
        try:
            return self.feed.subscribe(Tables.SLOTS, slot_id)
        except FeedDisconnected:
            return None

    # Admin

    async def list_upcoming_slots(self, limit: int = 20) -> List[Slot]:
        return await YourTurnRepository.list_upcoming(self.today(), limit)

    async def list_questions(self, limit: int = SlotDefaults.HISTORY_LIMIT) -> List[Question]:
        return await YourTurnRepository.list_questions(limit)

    async def list_history(self, limit: int = SlotDefaults.HISTORY_LIMIT) -> List[HistoryEntry]:
        return await YourTurnRepository.list_history(limit)

    async def moderate_question(
        self,
        question_id: int,
        actor: str,
        reason_id: str,
        custom_reason: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> bool:
        """Soft-delete a question and tell its author why. False if already removed."""
        try:
            reason_key = ViolationReason(reason_id)
        except ValueError:
            raise ValidationError(f"Unknown violation reason: {reason_id}") from None
        reason = VIOLATION_LABELS[reason_key]
        if reason_key == ViolationReason.OTHER and custom_reason and custom_reason.strip():
            reason = custom_reason.strip()

        question = await YourTurnRepository.get_question(question_id)
        if question is None:
            raise NotFoundError("Question not found", redirect="/admin/your-turn")

        now = self.clock()
        if not await YourTurnRepository.soft_delete_question(question_id, actor, reason, now):
            return False

        logger.info("Question %s removed by %s: %s", question_id, actor, reason)
        self.feed.publish(Tables.QUESTIONS, question_id, "UPDATE")

        preview = question.question_text[:50]
        message = (
            f'Your Your Turn question "{preview}" was removed for: {reason}. '
            "Please keep questions about entertainment."
        )
        await self.notifications.notify(
            question.user_id,
            "Your Turn question removed",
            message,
            "moderation",
            "/your-turn",
            email_type=EmailType.BROADCAST,
            email_data={"title": "Your Turn question removed", "message": message},
        )
        await AuditService.log_action(
            admin_username=actor,
            action_type="MODERATE_QUESTION",
            entity_type="your_turn_question",
            entity_id=question_id,
            old_value={"is_deleted": False},
            new_value={"is_deleted": True, "reason_id": reason_key.value},
            reason=reason,
            ip_address=ip_address,
            now=now,
        )
        return True
