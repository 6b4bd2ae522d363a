"""Route registration for the Flask app."""

from __future__ import annotations

from flask import Flask

from .admin import admin_bp
from .coupons import coupons_bp
from .health import health_bp
from .inphrosync import inphrosync_bp
from .notifications import notifications_bp
from .opinions import opinions_bp
from .your_turn import your_turn_bp


def register_routes(app: Flask) -> None:
    app.register_blueprint(your_turn_bp)
    app.register_blueprint(inphrosync_bp)
    app.register_blueprint(opinions_bp)
    app.register_blueprint(coupons_bp)
    app.register_blueprint(notifications_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(health_bp)
