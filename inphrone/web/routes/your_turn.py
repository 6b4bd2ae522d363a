"""Your Turn API."""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from inphrone.core.constants import ClaimOutcome, SubmitOutcome, VoteOutcome
from inphrone.core.exceptions import ValidationError
from inphrone.web.auth import user_required
from inphrone.web.routes.common import json_body, outcome_response, require, run, services

your_turn_bp = Blueprint("your_turn", __name__, url_prefix="/api/your-turn")


@your_turn_bp.get("/today")
@user_required
def today():
    return jsonify(run(services().your_turn.todays_board(g.profile.id)))


@your_turn_bp.get("/next")
def next_slot():
    return jsonify(services().your_turn.next_slot())


@your_turn_bp.get("/slots/<int:slot_id>")
@user_required
def get_slot(slot_id: int):
    slot = run(services().your_turn.get_slot(slot_id))
    return jsonify(slot.to_dict())


@your_turn_bp.post("/slots/<int:slot_id>/claim")
@user_required
def claim(slot_id: int):
    result = run(services().your_turn.claim_slot(slot_id, g.profile.id))
    return outcome_response({"slot": result.slot.to_dict()}, result.outcome, [ClaimOutcome.WON])


@your_turn_bp.post("/slots/<int:slot_id>/question")
@user_required
def submit_question(slot_id: int):
    data = json_body()
    require(data, "question_text", "options")
    if not isinstance(data["options"], list):
        raise ValidationError("'options' must be a list")
    result = run(
        services().your_turn.submit_question(slot_id, g.profile.id, data["question_text"], data["options"])
    )
    question = result.question.to_dict() if result.question else None
    return outcome_response({"question": question}, result.outcome, [SubmitOutcome.CREATED], status=201)


@your_turn_bp.post("/questions/<int:question_id>/vote")
@user_required
def vote(question_id: int):
    data = json_body()
    require(data, "option_id")
    result = run(services().your_turn.vote(question_id, g.profile.id, str(data["option_id"])))
    question = result.question.to_dict() if result.question else None
    return outcome_response({"question": question}, result.outcome, [VoteOutcome.RECORDED])
