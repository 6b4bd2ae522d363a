"""Tests for InphroSync daily polls."""

from dataclasses import replace
from datetime import date, timedelta

import pytest

from inphrone.core.constants import ResponseOutcome
from inphrone.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from inphrone.services.container import build_services
from inphrone.services.inphrosync_service import percentage

from conftest import TODAY


def test_percentage():
    """Test rounding and empty totals."""
    assert percentage(1, 3) == 33
    assert percentage(2, 3) == 67
    assert percentage(0, 0) == 0


@pytest.mark.asyncio
async def test_daily_questions_are_seeded(services):
    """Test the three seeded questions in display order."""
    questions = await services.inphrosync.get_daily_questions()

    assert [q.question_type for q in questions] == ["entertainment_mood", "device_used", "platform_used"]
    assert questions[1].option_ids() == ["phone", "tv", "laptop", "tablet"]


@pytest.mark.asyncio
async def test_one_response_per_question_per_day(services, make_profile):
    """Test that a second answer on the same day is ignored."""
    await make_profile("alice")

    first = await services.inphrosync.submit_response("alice", "device_used", "phone")
    second = await services.inphrosync.submit_response("alice", "device_used", "tv")
    next_day = await services.inphrosync.submit_response(
        "alice", "device_used", "tv", on_date=TODAY + timedelta(days=1)
    )

    assert first.outcome == ResponseOutcome.RECORDED
    assert first.streak_days == 1
    assert second.outcome == ResponseOutcome.ALREADY_ANSWERED
    assert next_day.outcome == ResponseOutcome.RECORDED
    assert next_day.streak_days == 2


@pytest.mark.asyncio
async def test_response_validation(services, make_profile):
    """Test unknown types, unknown options and industry users."""
    await make_profile("alice")
    await make_profile("studio1", user_type="studio")

    with pytest.raises(ValidationError):
        await services.inphrosync.submit_response("alice", "favourite_snack", "popcorn")
    with pytest.raises(ValidationError):
        await services.inphrosync.submit_response("alice", "device_used", "radio")
    with pytest.raises(AuthorizationError):
        await services.inphrosync.submit_response("studio1", "device_used", "tv")
    with pytest.raises(NotFoundError):
        await services.inphrosync.submit_response("ghost", "device_used", "tv")


@pytest.mark.asyncio
async def test_results_refresh_after_new_answers(services, make_profile):
    """Test that cached results are invalidated by a new response."""
    for user in ("alice", "bob", "carol"):
        await make_profile(user)
    await services.inphrosync.submit_response("alice", "device_used", "phone")
    await services.inphrosync.submit_response("bob", "device_used", "phone")

    before = await services.inphrosync.get_results()
    await services.inphrosync.submit_response("carol", "device_used", "tv")
    after = await services.inphrosync.get_results()

    assert before["device_used"]["total"] == 2
    device = after["device_used"]
    assert device["total"] == 3
    by_id = {opt["id"]: opt for opt in device["options"]}
    assert by_id["phone"]["count"] == 2
    assert by_id["phone"]["percentage"] == 67
    assert by_id["phone"]["width"] == 100
    assert by_id["tv"]["width"] == 50
    assert after["platform_used"]["total"] == 0


@pytest.mark.asyncio
async def test_yesterday_insights(services, make_profile):
    """Test the top answer per question from the previous day."""
    for user in ("alice", "bob", "carol"):
        await make_profile(user)
    yesterday = TODAY - timedelta(days=1)
    await services.inphrosync.submit_response("alice", "entertainment_mood", "relaxed", on_date=yesterday)
    await services.inphrosync.submit_response("bob", "entertainment_mood", "relaxed", on_date=yesterday)
    await services.inphrosync.submit_response("carol", "entertainment_mood", "excited", on_date=yesterday)

    insights = await services.inphrosync.yesterday_insights()

    assert insights == [{
        "question_type": "entertainment_mood",
        "question_text": "What was your entertainment mood yesterday?",
        "top_option": "relaxed",
        "top_label": "Relaxed",
        "count": 2,
        "total": 3,
        "percentage": 67,
    }]


@pytest.mark.asyncio
async def test_daily_progress(services, make_profile):
    """Test how many of today's questions a user answered."""
    await make_profile("alice")
    await services.inphrosync.submit_response("alice", "device_used", "laptop")

    progress = await services.inphrosync.daily_progress("alice")

    assert progress == {"answered": 1, "total": 3, "percent": 33}


@pytest.mark.asyncio
async def test_poll_day_follows_configured_timezone(db, test_config, clock, feed, email_session, make_profile):
    """Test that answers and streak days use the local calendar day, not the UTC one."""
    kolkata = build_services(
        replace(test_config, slot_timezone="Asia/Kolkata"), feed=feed, clock=clock, http_session=email_session
    )
    await make_profile("alice")
    clock.set(20, 0)
    local_day = date(2025, 1, 16)

    result = await kolkata.inphrosync.submit_response("alice", "device_used", "phone")

    assert result.outcome == ResponseOutcome.RECORDED
    assert kolkata.inphrosync.today() == local_day
    assert kolkata.gamification.today() == local_day
    assert (await kolkata.inphrosync.daily_progress("alice"))["answered"] == 1
    assert (await kolkata.inphrosync.daily_progress("alice", on_date=TODAY))["answered"] == 0
    streak = await kolkata.gamification.get_streak("alice")
    assert streak.inphrosync_last_participation == local_day
