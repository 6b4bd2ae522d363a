"""Flask application factory."""

from __future__ import annotations

from typing import Optional

from flask import Flask, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from inphrone.config import Config
from inphrone.core import get_logger
from inphrone.core.exceptions import (
    ApplicationError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OnboardingIncompleteError,
    ServiceError,
    ValidationError,
)
from inphrone.services.container import Services, build_services
from inphrone.web.auth import AdminCredentials, init_login_manager
from inphrone.web.config_middleware import (
    configure_app,
    setup_extensions,
    setup_metrics,
    setup_security_headers,
)
from inphrone.web.routes import register_routes

logger = get_logger(__name__)


def create_app(config: Config, services: Optional[Services] = None, testing: bool = False) -> Flask:
    """Create and configure the Flask application.

    Args:
        config: Application configuration
        services: Prebuilt service graph; built from ``config`` when omitted
        testing: Disables CSRF checks
    """
    app = Flask(__name__)

    configure_app(app, config, testing)
    setup_extensions(app)
    setup_security_headers(app)
    setup_metrics(app)

    init_login_manager(
        app,
        AdminCredentials(username=config.admin_username, password_hash=config.admin_password),
    )

    app.config["SERVICES"] = services or build_services(config)
    register_routes(app)
    _setup_routes(app)
    _setup_error_handlers(app)
    return app


def _setup_routes(app: Flask) -> None:
    @app.route("/metrics")
    def metrics():
        return generate_latest(), 200, {"Content-Type": CONTENT_TYPE_LATEST}


def _error(message: str, status: int, redirect: Optional[str] = None):
    body = {"error": message}
    if redirect:
        body["redirect"] = redirect
    return jsonify(body), status


def _setup_error_handlers(app: Flask) -> None:
    @app.errorhandler(AuthenticationError)
    def unauthenticated(error):
        return _error(str(error), 401, "/auth")

    @app.errorhandler(OnboardingIncompleteError)
    def onboarding_incomplete(error):
        return _error(str(error), 403, "/onboarding")

    @app.errorhandler(AuthorizationError)
    def forbidden(error):
        return _error(str(error), 403)

    @app.errorhandler(NotFoundError)
    def not_found(error):
        return _error(str(error), 404, error.redirect or "/")

    @app.errorhandler(ValidationError)
    def invalid(error):
        return _error(str(error), 400)

    @app.errorhandler(ConflictError)
    def conflict(error):
        return _error(str(error), 409)

    @app.errorhandler(ServiceError)
    def unavailable(error):
        logger.warning("Service failure: %s", error)
        return _error("try again", 503)

    @app.errorhandler(ApplicationError)
    def application_error(error):
        logger.error("Unhandled application error: %s", error, exc_info=error)
        return _error("Internal error", 500)

    @app.errorhandler(404)
    def route_not_found(error):
        return _error("Not found", 404, "/")
