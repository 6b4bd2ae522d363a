"""Notifications, push subscription and public counters."""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from inphrone.core.exceptions import NotFoundError, ValidationError
from inphrone.database.repositories import AdminStatsRepository, PushSubscriptionRepository
from inphrone.web.auth import user_required
from inphrone.web.config_middleware import cache
from inphrone.web.routes.common import json_body, require, run, services

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api")


@notifications_bp.get("/notifications")
@user_required
def list_notifications():
    unread_only = request.args.get("unread") in {"1", "true", "yes"}
    items = run(services().notifications.list_for_user(g.profile.id, unread_only=unread_only))
    return jsonify([item.to_dict() for item in items])


@notifications_bp.post("/notifications/<int:notification_id>/read")
@user_required
def mark_read(notification_id: int):
    run(services().notifications.mark_read(notification_id, g.profile.id))
    return jsonify({"ok": True})


@notifications_bp.get("/push/vapid-key")
def vapid_key():
    key = current_app.config.get("VAPID_PUBLIC_KEY")
    if not key:
        raise NotFoundError("Push notifications are not configured")
    return jsonify({"publicKey": key})


@notifications_bp.post("/push/subscribe")
@user_required
def subscribe():
    data = json_body()
    require(data, "endpoint", "keys")
    keys = data["keys"]
    if not isinstance(keys, dict) or not keys.get("p256dh") or not keys.get("auth"):
        raise ValidationError("Subscription keys 'p256dh' and 'auth' are required")
    run(PushSubscriptionRepository.subscribe(g.profile.id, str(data["endpoint"]), keys["p256dh"], keys["auth"]))
    run(services().push_prompt.enable(g.profile.id))
    return jsonify({"ok": True}), 201


@notifications_bp.post("/push/unsubscribe")
@user_required
def unsubscribe():
    data = request.get_json(silent=True) or {}
    removed = run(PushSubscriptionRepository.unsubscribe(g.profile.id, data.get("endpoint")))
    run(services().push_prompt.disable(g.profile.id))
    return jsonify({"removed": removed})


@notifications_bp.get("/push/prompt")
@user_required
def push_prompt():
    session_id = request.headers.get("X-Session-Id")
    if not session_id:
        raise ValidationError("X-Session-Id header is required")
    subscribed = run(PushSubscriptionRepository.is_subscribed(g.profile.id))
    show = run(
        services().push_prompt.should_show(
            g.profile.id,
            session_id,
            supported=request.args.get("supported", "true") == "true",
            permission=request.args.get("permission", "default"),
            subscribed=subscribed,
        )
    )
    return jsonify({"show": show})


@notifications_bp.post("/push/prompt/dismiss")
@user_required
def dismiss_push_prompt():
    run(services().push_prompt.dismiss(g.profile.id))
    return jsonify({"ok": True})


@notifications_bp.get("/public/counts")
@cache.cached(timeout=60)
def public_counts():
    return jsonify(run(AdminStatsRepository.public_counts()))


@notifications_bp.get("/email-banner")
@user_required
def email_banner():
    verified = request.args.get("verified", "false") == "true"
    return jsonify({"show": run(services().email_banner.should_show(g.profile.id, verified))})


@notifications_bp.post("/email-banner/dismiss")
@user_required
def dismiss_email_banner():
    run(services().email_banner.dismiss(g.profile.id))
    return jsonify({"ok": True})
