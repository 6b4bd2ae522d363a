"""Flask application configuration and middleware setup."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from flask import Flask, g, request
from flask_caching import Cache
from flask_wtf.csrf import CSRFProtect
from prometheus_client import Counter, Histogram

if TYPE_CHECKING:
    from inphrone.config import Config

# Global instances
cache = Cache()
csrf = CSRFProtect()

# Prometheus metrics
REQUEST_LATENCY = Histogram(
    "inphrone_http_request_latency_seconds",
    "HTTP request latency",
    ["method", "path"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)
REQUEST_ERRORS = Counter(
    "inphrone_http_request_errors_total",
    "Total number of 5xx responses",
    ["method", "path"],
)


def configure_app(app: Flask, config: Config, testing: bool = False) -> None:
    app.config.update(
        SECRET_KEY=config.secret_key,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SECURE=(config.environment != "development"),
        SESSION_COOKIE_SAMESITE="Lax",
        DATABASE_PATH=config.database_path,
        TOKEN_MAX_AGE=config.token_max_age,
        VAPID_PUBLIC_KEY=config.vapid_public_key,
        TESTING=testing,
        WTF_CSRF_TIME_LIMIT=None,
        WTF_CSRF_CHECK_DEFAULT=False,
        WTF_CSRF_ENABLED=not testing,
    )

    if config.environment == "production":
        if config.admin_username == "admin" and config.admin_password == "123456":
            app.logger.warning("Insecure admin credentials detected in production")
        if not config.resend_api_key:
            app.logger.warning("RESEND_API_KEY is not set, emails will not be sent")


def setup_extensions(app: Flask) -> None:
    cache.init_app(app, config={"CACHE_TYPE": "SimpleCache"})
    csrf.init_app(app)


def setup_security_headers(app: Flask) -> None:
    @app.after_request
    def add_security_headers(response):
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "same-origin")
        response.headers.setdefault("Permissions-Policy", "camera=(), microphone=(), geolocation=()")
        return response


def setup_metrics(app: Flask) -> None:
    @app.before_request
    def before_metrics():
        g._metrics_start = time.perf_counter()

    @app.after_request
    def after_metrics(response):
        path = getattr(request.url_rule, "rule", request.path)
        start = getattr(g, "_metrics_start", None)
        if start is not None:
            REQUEST_LATENCY.labels(method=request.method, path=path).observe(time.perf_counter() - start)
        if response.status_code >= 500:
            REQUEST_ERRORS.labels(method=request.method, path=path).inc()
        return response
