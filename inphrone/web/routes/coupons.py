"""Coupon rewards API."""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from inphrone.core.constants import CouponClaimOutcome
from inphrone.web.auth import user_required
from inphrone.web.routes.common import outcome_response, run, services

coupons_bp = Blueprint("coupons", __name__, url_prefix="/api/coupons")


@coupons_bp.get("")
@user_required
def available():
    coupons = run(services().coupons.list_available())
    return jsonify([coupon.to_dict() for coupon in coupons])


@coupons_bp.post("/<int:coupon_id>/claim")
@user_required
def claim(coupon_id: int):
    result = run(services().coupons.claim_coupon(coupon_id, g.profile.id))
    return outcome_response({"coupon": result.coupon.to_dict()}, result.outcome, [CouponClaimOutcome.CLAIMED])


@coupons_bp.get("/mine")
@user_required
def mine():
    svc = services().coupons
    claimed = run(svc.my_coupons(g.profile.id))
    expiring = run(svc.expiring_soon(g.profile.id))
    return jsonify({
        "coupons": [coupon.to_dict() for coupon in claimed],
        "expiring_soon": [coupon.coupon_id for coupon in expiring],
    })
