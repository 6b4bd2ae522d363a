"""Opinion feed API."""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from inphrone.core.constants import LikeOutcome, OpinionLimits
from inphrone.core.exceptions import ValidationError
from inphrone.database.repositories import OpinionRepository
from inphrone.services.cache import CacheLevel
from inphrone.web.auth import user_required
from inphrone.web.routes.common import int_arg, json_body, outcome_response, require, run, services

opinions_bp = Blueprint("opinions", __name__, url_prefix="/api/opinions")


@opinions_bp.get("/categories")
def categories():
    return jsonify(run(services().cache.get_or_set("categories", OpinionRepository.list_categories, CacheLevel.COLD)))


@opinions_bp.get("")
@user_required
def list_opinions():
    category = request.args.get("category_id")
    opinions = run(
        services().opinions.list_opinions(
            category_id=int(category) if category and category.isdigit() else None,
            search=request.args.get("q"),
            sort=request.args.get("sort", "recent"),
            limit=int_arg("limit", OpinionLimits.PAGE_SIZE),
            offset=int_arg("offset", 0),
        )
    )
    return jsonify([opinion.to_dict() for opinion in opinions])


@opinions_bp.post("")
@user_required
def create_opinion():
    data = json_body()
    require(data, "category_id", "title", "content")
    try:
        category_id = int(data["category_id"])
    except (TypeError, ValueError):
        raise ValidationError("'category_id' must be an integer") from None
    opinion = run(
        services().opinions.create_opinion(g.profile.id, category_id, str(data["title"]), str(data["content"]))
    )
    return jsonify(opinion.to_dict()), 201


@opinions_bp.post("/<int:opinion_id>/like")
@user_required
def like(opinion_id: int):
    outcome = run(services().opinions.like_opinion(opinion_id, g.profile.id))
    return outcome_response({"opinion_id": opinion_id}, outcome, [LikeOutcome.LIKED])
