"""InphroSync, streak and badge API."""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from inphrone.core.constants import ResponseOutcome
from inphrone.services.gamification_service import milestone_progress, next_milestone
from inphrone.web.auth import user_required
from inphrone.web.routes.common import date_arg, json_body, outcome_response, require, run, services

inphrosync_bp = Blueprint("inphrosync", __name__, url_prefix="/api")


@inphrosync_bp.get("/inphrosync/questions")
@user_required
def questions():
    items = run(services().inphrosync.get_daily_questions())
    return jsonify([question.to_dict() for question in items])


@inphrosync_bp.post("/inphrosync/responses")
@user_required
def submit_response():
    data = json_body()
    require(data, "question_type", "option")
    result = run(
        services().inphrosync.submit_response(g.profile.id, str(data["question_type"]), str(data["option"]))
    )
    return outcome_response(
        {"streak_days": result.streak_days}, result.outcome, [ResponseOutcome.RECORDED], status=201
    )


@inphrosync_bp.get("/inphrosync/results")
@user_required
def results():
    return jsonify(run(services().inphrosync.get_results(date_arg("date"))))


@inphrosync_bp.get("/inphrosync/insights/yesterday")
@user_required
def yesterday_insights():
    return jsonify(run(services().inphrosync.yesterday_insights()))


@inphrosync_bp.get("/inphrosync/progress")
@user_required
def progress():
    return jsonify(run(services().inphrosync.daily_progress(g.profile.id)))


@inphrosync_bp.get("/streaks/me")
@user_required
def my_streak():
    streak = run(services().gamification.get_streak(g.profile.id))
    if streak is None:
        return jsonify({"streak": None})
    weeks, tier, name = next_milestone(streak.current_streak_weeks)
    return jsonify({
        "streak": streak.to_dict(),
        "next_milestone": {"weeks": weeks, "tier": tier.value, "name": name},
        "progress": milestone_progress(streak.current_streak_weeks),
    })


@inphrosync_bp.get("/badges/me")
@user_required
def my_badges():
    badges = run(services().gamification.list_badges(g.profile.id))
    return jsonify([badge.to_dict() for badge in badges])
