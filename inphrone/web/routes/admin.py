"""Admin JSON endpoints: moderation, coupons, broadcast and dashboards."""

from __future__ import annotations

from datetime import datetime

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from inphrone.core.constants import SlotDefaults
from inphrone.core.exceptions import AuthenticationError, ValidationError
from inphrone.database.repositories import AdminStatsRepository, ProfileRepository
from inphrone.services.audit_service import AuditService
from inphrone.web.auth import AdminUser, validate_credentials
from inphrone.web.config_middleware import csrf
from inphrone.web.routes.common import int_arg, json_body, require, run, services

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


@admin_bp.before_request
def protect_forms():
    if request.method == "POST" and request.endpoint != "admin.login" \
            and current_app.config.get("WTF_CSRF_ENABLED", True):
        csrf.protect()


@admin_bp.get("/csrf-token")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


@admin_bp.post("/login")
def login():
    data = json_body()
    require(data, "username", "password")
    credentials = current_app.config["ADMIN_CREDENTIALS"]
    if not validate_credentials(credentials, str(data["username"]), str(data["password"])):
        raise AuthenticationError("Invalid username or password")
    login_user(AdminUser(username=credentials.username))
    return jsonify({"ok": True, "username": credentials.username})


@admin_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@admin_bp.get("/stats")
@login_required
def stats():
    data = run(AdminStatsRepository.dashboard())
    data["users_by_type"] = run(ProfileRepository.count_by_type())
    data["cache"] = services().cache.stats()
    return jsonify(data)


@admin_bp.get("/your-turn/slots")
@login_required
def upcoming_slots():
    slots = run(services().your_turn.list_upcoming_slots(int_arg("limit", 20)))
    return jsonify([slot.to_dict() for slot in slots])


@admin_bp.get("/your-turn/questions")
@login_required
def questions():
    items = run(services().your_turn.list_questions(int_arg("limit", SlotDefaults.HISTORY_LIMIT)))
    return jsonify([question.to_dict() for question in items])


@admin_bp.get("/your-turn/history")
@login_required
def history():
    items = run(services().your_turn.list_history(int_arg("limit", SlotDefaults.HISTORY_LIMIT)))
    return jsonify([entry.to_dict() for entry in items])


@admin_bp.post("/your-turn/questions/<int:question_id>/moderate")
@login_required
def moderate_question(question_id: int):
    data = json_body()
    require(data, "reason_id")
    removed = run(
        services().your_turn.moderate_question(
            question_id,
            current_user.username,
            str(data["reason_id"]),
            data.get("custom_reason"),
            ip_address=request.remote_addr,
        )
    )
    return jsonify({"removed": removed}), (200 if removed else 409)


@admin_bp.post("/opinions/<int:opinion_id>/moderate")
@login_required
def moderate_opinion(opinion_id: int):
    data = json_body()
    require(data, "reason")
    removed = run(
        services().opinions.moderate_opinion(
            opinion_id, current_user.username, str(data["reason"]), ip_address=request.remote_addr
        )
    )
    return jsonify({"removed": removed}), (200 if removed else 409)


@admin_bp.post("/coupons")
@login_required
def create_coupon():
    data = json_body()
    require(data, "title", "brand", "code", "total_quantity")
    expires_at = None
    if data.get("expires_at"):
        try:
            expires_at = datetime.fromisoformat(str(data["expires_at"]))
        except ValueError:
            raise ValidationError("'expires_at' must be an ISO timestamp") from None
    try:
        quantity = int(data["total_quantity"])
    except (TypeError, ValueError):
        raise ValidationError("'total_quantity' must be an integer") from None

    coupon = run(
        services().coupons.create_coupon(
            current_user.username,
            str(data["title"]),
            str(data["brand"]),
            str(data["code"]),
            quantity,
            description=data.get("description"),
            expires_at=expires_at,
        )
    )
    return jsonify(coupon.to_dict()), 201


@admin_bp.post("/coupons/<int:coupon_id>/deactivate")
@login_required
def deactivate_coupon(coupon_id: int):
    changed = run(services().coupons.deactivate_coupon(current_user.username, coupon_id))
    return jsonify({"deactivated": changed}), (200 if changed else 409)


@admin_bp.post("/broadcast")
@login_required
def broadcast():
    data = json_body()
    require(data, "title", "message")
    user_ids = run(ProfileRepository.list_ids(data.get("user_type")))
    result = run(
        services().notifications.broadcast(
            user_ids, str(data["title"]), str(data["message"]), data.get("action_url")
        )
    )
    run(
        AuditService.log_action(
            admin_username=current_user.username,
            action_type="BROADCAST",
            entity_type="notification",
            new_value={"title": data["title"], **result},
            ip_address=request.remote_addr,
        )
    )
    return jsonify(result)


@admin_bp.get("/audit")
@login_required
def audit():
    logs = run(
        AuditService.get_audit_logs(
            limit=int_arg("limit", 100),
            offset=int_arg("offset", 0),
            action_type=request.args.get("action_type"),
            entity_type=request.args.get("entity_type"),
        )
    )
    return jsonify(logs)
