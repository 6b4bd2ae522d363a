"""Tests for the Your Turn slot state machine."""

import asyncio

import aiosqlite
import pytest

from inphrone.core.constants import (
    ClaimOutcome,
    SlotStatus,
    SubmitOutcome,
    Tables,
    VoteOutcome,
)
from inphrone.core.exceptions import NotFoundError, ValidationError
from inphrone.database.base_repository import BaseRepository
from inphrone.database.repositories import NotificationRepository
from inphrone.database.your_turn_repository import YourTurnRepository
from inphrone.services.your_turn import slot_label

from conftest import TODAY

OPTIONS = ["Theatre", "Streaming"]


async def _win_morning_slot(services, clock, todays_slots, user_id):
    clock.set(9, 0, 5)
    result = await services.your_turn.claim_slot(todays_slots["09:00"].id, user_id)
    assert result.outcome == ClaimOutcome.WON
    return result.slot


@pytest.mark.asyncio
async def test_claim_before_window_is_not_open(services, clock, todays_slots, make_profile):
    """Test that a claim before the slot time changes nothing."""
    await make_profile("alice")
    clock.set(8, 59, 59)

    result = await services.your_turn.claim_slot(todays_slots["09:00"].id, "alice")

    assert result.outcome == ClaimOutcome.NOT_OPEN
    assert result.slot.status == SlotStatus.SCHEDULED
    assert result.slot.attempt_count == 0
    assert await YourTurnRepository.get_attempts(result.slot.id) == []


@pytest.mark.asyncio
async def test_first_claim_wins(services, clock, todays_slots, make_profile):
    """Test that the first claim in the window wins the slot."""
    await make_profile("alice")

    slot = await _win_morning_slot(services, clock, todays_slots, "alice")

    assert slot.status == SlotStatus.WON
    assert slot.winner_id == "alice"
    assert slot.attempt_count == 1
    assert slot.opened_at is not None
    attempts = await YourTurnRepository.get_attempts(slot.id)
    assert [(a.user_id, a.is_winner) for a in attempts] == [("alice", True)]


@pytest.mark.asyncio
async def test_losing_claim_is_recorded_once(services, clock, todays_slots, make_profile):
    """Test that repeated losing claims count as one attempt."""
    await make_profile("alice")
    await make_profile("bob")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")

    first = await services.your_turn.claim_slot(slot.id, "bob")
    second = await services.your_turn.claim_slot(slot.id, "bob")

    assert first.outcome == ClaimOutcome.ALREADY_TAKEN
    assert second.outcome == ClaimOutcome.ALREADY_TAKEN
    assert second.slot.attempt_count == 2
    assert second.slot.winner_id == "alice"


@pytest.mark.asyncio
async def test_winner_reclaim_is_idempotent(services, clock, todays_slots, make_profile):
    """Test that the winner claiming again still wins without new attempts."""
    await make_profile("alice")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")

    again = await services.your_turn.claim_slot(slot.id, "alice")

    assert again.outcome == ClaimOutcome.WON
    assert again.slot.attempt_count == 1


@pytest.mark.asyncio
async def test_concurrent_claims_have_single_winner(services, clock, todays_slots, make_profile):
    """Test that simultaneous claims produce exactly one winner."""
    users = [await make_profile(f"user{i}") for i in range(8)]
    clock.set(9, 0, 1)
    slot_id = todays_slots["09:00"].id

    results = await asyncio.gather(
        *(services.your_turn.claim_slot(slot_id, user) for user in users)
    )

    outcomes = [result.outcome for result in results]
    assert outcomes.count(ClaimOutcome.WON) == 1
    assert outcomes.count(ClaimOutcome.ALREADY_TAKEN) == 7

    winner = users[outcomes.index(ClaimOutcome.WON)]
    slot = await services.your_turn.get_slot(slot_id)
    assert slot.winner_id == winner
    assert slot.attempt_count == 8
    attempts = await YourTurnRepository.get_attempts(slot_id)
    assert len(attempts) == 8
    assert [a.user_id for a in attempts if a.is_winner] == [winner]


@pytest.mark.asyncio
async def test_window_end_is_exclusive(services, clock, todays_slots, make_profile):
    """Test that a claim exactly at the window end is too late."""
    await make_profile("alice")
    clock.set(9, 0, 20)

    result = await services.your_turn.claim_slot(todays_slots["09:00"].id, "alice")

    assert result.outcome == ClaimOutcome.EXPIRED
    assert result.slot.status == SlotStatus.EXPIRED
    assert result.slot.winner_id is None
    assert result.slot.attempt_count == 0


@pytest.mark.asyncio
async def test_claim_on_last_moment_wins(services, clock, todays_slots, make_profile):
    """Test that a claim one second before the window end still wins."""
    await make_profile("alice")
    clock.set(9, 0, 19)

    result = await services.your_turn.claim_slot(todays_slots["09:00"].id, "alice")

    assert result.outcome == ClaimOutcome.WON


@pytest.mark.asyncio
async def test_claim_unknown_slot(services, db):
    """Test that claiming a missing slot raises NotFoundError."""
    with pytest.raises(NotFoundError):
        await services.your_turn.claim_slot(9999, "alice")


@pytest.mark.asyncio
async def test_status_cannot_move_backwards(services, clock, todays_slots, make_profile):
    """Test that the database rejects a backwards status change."""
    await make_profile("alice")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")

    with pytest.raises(aiosqlite.Error):
        await BaseRepository.execute("UPDATE your_turn_slots SET status='open' WHERE id=?", (slot.id,))
    with pytest.raises(aiosqlite.Error):
        await BaseRepository.execute("UPDATE your_turn_slots SET winner_id='bob' WHERE id=?", (slot.id,))
    with pytest.raises(aiosqlite.Error):
        await BaseRepository.execute("UPDATE your_turn_slots SET attempt_count=0 WHERE id=?", (slot.id,))

    assert (await services.your_turn.get_slot(slot.id)).winner_id == "alice"


@pytest.mark.asyncio
async def test_submit_question_only_by_winner(services, clock, todays_slots, make_profile):
    """Test that only the winner can submit, and only once."""
    await make_profile("alice")
    await make_profile("bob")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")

    denied = await services.your_turn.submit_question(slot.id, "bob", "Theatre or streaming?", OPTIONS)
    created = await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)
    repeat = await services.your_turn.submit_question(slot.id, "alice", "Another question?", OPTIONS)

    assert denied.outcome == SubmitOutcome.UNAUTHORIZED
    assert created.outcome == SubmitOutcome.CREATED
    assert [opt.option_id for opt in created.question.options] == ["opt1", "opt2"]
    assert created.question.winner_name == "Alice"
    assert repeat.outcome == SubmitOutcome.ALREADY_SUBMITTED
    assert repeat.question.question_text == "Theatre or streaming?"


@pytest.mark.asyncio
async def test_submit_question_on_unwon_slot(services, clock, todays_slots, make_profile):
    """Test that nobody can submit on a slot that has not been won."""
    await make_profile("alice")
    clock.set(9, 0, 5)

    result = await services.your_turn.submit_question(todays_slots["09:00"].id, "alice", "Any takers?", OPTIONS)

    assert result.outcome == SubmitOutcome.UNAUTHORIZED
    assert result.question is None


@pytest.mark.parametrize(
    "text,options",
    [
        ("Hey", OPTIONS),
        ("Theatre or streaming?", ["Only one"]),
        ("Theatre or streaming?", ["A", "B", "C", "D", "E"]),
        ("Theatre or streaming?", ["Same", "same"]),
        ("Theatre or streaming?", ["Filled", "  "]),
    ],
)
@pytest.mark.asyncio
async def test_submit_question_validation(services, clock, todays_slots, make_profile, text, options):
    """Test question text and option validation."""
    await make_profile("alice")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")

    with pytest.raises(ValidationError):
        await services.your_turn.submit_question(slot.id, "alice", text, options)


@pytest.mark.asyncio
async def test_vote_once_per_user(services, clock, todays_slots, make_profile):
    """Test voting tallies and duplicate votes."""
    for user in ("alice", "bob", "carol"):
        await make_profile(user)
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")
    question = (await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)).question

    first = await services.your_turn.vote(question.id, "bob", "opt1")
    duplicate = await services.your_turn.vote(question.id, "bob", "opt2")
    other = await services.your_turn.vote(question.id, "carol", "opt2")

    assert first.outcome == VoteOutcome.RECORDED
    assert duplicate.outcome == VoteOutcome.ALREADY_VOTED
    assert other.outcome == VoteOutcome.RECORDED
    assert other.question.total_votes == 2
    assert {opt.option_id: opt.votes for opt in other.question.options} == {"opt1": 1, "opt2": 1}


@pytest.mark.asyncio
async def test_vote_unknown_option(services, clock, todays_slots, make_profile):
    """Test that an option outside the question is rejected."""
    await make_profile("alice")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")
    question = (await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)).question

    with pytest.raises(ValidationError):
        await services.your_turn.vote(question.id, "alice", "opt9")
    with pytest.raises(NotFoundError):
        await services.your_turn.vote(12345, "alice", "opt1")


@pytest.mark.asyncio
async def test_moderation_closes_voting_and_notifies(services, clock, todays_slots, make_profile, email_session):
    """Test that a removed question stops taking votes and its author hears why."""
    await make_profile("alice")
    await make_profile("bob")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")
    question = (await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)).question

    removed = await services.your_turn.moderate_question(question.id, "admin", "spam", ip_address="127.0.0.1")
    again = await services.your_turn.moderate_question(question.id, "admin", "spam")
    vote = await services.your_turn.vote(question.id, "bob", "opt1")

    assert removed is True
    assert again is False
    assert vote.outcome == VoteOutcome.CLOSED
    assert vote.question.is_deleted
    assert vote.question.deletion_reason == "Spam or promotional content"

    notifications = await NotificationRepository.list_for_user("alice")
    assert len(notifications) == 1
    assert "Spam or promotional content" in notifications[0].message
    assert email_session.sent_types() == ["broadcast"]


@pytest.mark.asyncio
async def test_moderation_custom_reason(services, clock, todays_slots, make_profile):
    """Test that the custom text replaces the label for 'other'."""
    await make_profile("alice")
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")
    question = (await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)).question

    with pytest.raises(ValidationError):
        await services.your_turn.moderate_question(question.id, "admin", "rude")

    await services.your_turn.moderate_question(question.id, "admin", "other", "Off-topic for today")
    stored = await YourTurnRepository.get_question(question.id)
    assert stored.deletion_reason == "Off-topic for today"


@pytest.mark.asyncio
async def test_archive_snapshots_final_tallies(services, clock, todays_slots, make_profile):
    """Test that archiving keeps the final state and freezes the slot."""
    for user in ("alice", "bob"):
        await make_profile(user)
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")
    question = (await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)).question
    await services.your_turn.vote(question.id, "bob", "opt2")
    await services.your_turn.claim_slot(slot.id, "bob")

    assert await services.your_turn.archive_slot(slot.id) is True
    assert await services.your_turn.archive_slot(slot.id) is False

    history = await services.your_turn.list_history()
    assert len(history) == 1
    entry = history[0]
    assert entry.final_status == "won"
    assert entry.winner_name == "Alice"
    assert entry.total_votes == 1
    assert entry.attempt_count == 2
    assert entry.options == [
        {"id": "opt1", "label": "Theatre", "votes": 0},
        {"id": "opt2", "label": "Streaming", "votes": 1},
    ]

    assert (await services.your_turn.claim_slot(slot.id, "alice")).outcome == ClaimOutcome.WON
    late = await services.your_turn.claim_slot(slot.id, "bob")
    assert late.outcome == ClaimOutcome.ALREADY_TAKEN
    assert late.slot.attempt_count == 2
    assert (await services.your_turn.vote(question.id, "alice", "opt1")).outcome == VoteOutcome.CLOSED
    resubmit = await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)
    assert resubmit.outcome == SubmitOutcome.ALREADY_ARCHIVED


@pytest.mark.asyncio
async def test_archive_expired_slot(services, clock, todays_slots, make_profile):
    """Test that an unclaimed slot archives as expired."""
    await make_profile("alice")
    clock.set(9, 1)
    await services.your_turn.advance_slot(todays_slots["09:00"].id)

    assert await services.your_turn.archive_slot(todays_slots["09:00"].id) is True

    result = await services.your_turn.claim_slot(todays_slots["09:00"].id, "alice")
    assert result.outcome == ClaimOutcome.EXPIRED
    assert result.slot.status == SlotStatus.ARCHIVED
    history = await services.your_turn.list_history()
    assert history[0].final_status == "expired"
    assert history[0].winner_id is None


@pytest.mark.asyncio
async def test_claim_publishes_change(services, clock, todays_slots, make_profile, feed):
    """Test that a won claim notifies slot subscribers."""
    await make_profile("alice")
    slot_id = todays_slots["09:00"].id
    subscription = feed.subscribe(Tables.SLOTS, slot_id)
    clock.set(9, 0, 5)

    await services.your_turn.claim_slot(slot_id, "alice")

    event = await subscription.wait(timeout=1)
    assert event.table == Tables.SLOTS
    assert event.row_id == slot_id
    subscription.close()


@pytest.mark.asyncio
async def test_todays_board(services, clock, todays_slots, make_profile):
    """Test the per-user view of today's slots and questions."""
    for user in ("alice", "bob"):
        await make_profile(user)
    slot = await _win_morning_slot(services, clock, todays_slots, "alice")
    question = (await services.your_turn.submit_question(slot.id, "alice", "Theatre or streaming?", OPTIONS)).question
    await services.your_turn.claim_slot(slot.id, "bob")
    await services.your_turn.vote(question.id, "bob", "opt1")

    board = await services.your_turn.todays_board("bob")

    assert board["date"] == TODAY.isoformat()
    morning = board["slots"][0]
    assert morning["label"] == "9:00 AM"
    assert morning["has_attempted"] is True
    assert morning["is_winner"] is False
    assert board["questions"][0]["my_vote"] == "opt1"
    assert board["next_slot"]["label"] == "2:00 PM"


def test_slot_label():
    """Test 12-hour slot labels."""
    assert slot_label("09:00") == "9:00 AM"
    assert slot_label("14:00") == "2:00 PM"
    assert slot_label("00:30") == "12:30 AM"
    assert slot_label("12:00") == "12:00 PM"


@pytest.mark.asyncio
async def test_next_slot_rolls_to_tomorrow(services, clock):
    """Test that after the last slot the next one is tomorrow morning."""
    clock.set(19, 30)

    upcoming = services.your_turn.next_slot()

    assert upcoming["slot_time"] == "09:00"
    assert upcoming["label"] == "9:00 AM (Tomorrow)"
    assert upcoming["starts_at"].startswith("2025-01-16T09:00")
