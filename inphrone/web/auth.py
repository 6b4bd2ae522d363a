"""Authentication for the JSON API and the admin panel.

API callers present ``Authorization: Bearer <token>``; tokens are signed
with the application secret and carry only the user id. Admins log in with
the configured username/password and hold a Flask-Login session.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Callable, Optional

from flask import current_app, g, jsonify, request
from flask_login import LoginManager, UserMixin
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from inphrone.core import get_logger
from inphrone.core.exceptions import AuthenticationError, OnboardingIncompleteError
from inphrone.database.models import Profile
from inphrone.database.repositories import ProfileRepository
from inphrone.services.async_runner import run_coroutine_sync

logger = get_logger(__name__)

TOKEN_SALT = "inphrone-api"


@dataclass
class AdminCredentials:
    """Credentials for the admin panel, independent of user profiles."""
    username: str
    password_hash: str


login_manager = LoginManager()


class AdminUser(UserMixin):
    """Represents an authenticated admin user."""
    def __init__(self, username: str) -> None:
        self.id = username
        self.username = username


def init_login_manager(app, credentials: AdminCredentials) -> AdminCredentials:
    """Attach Flask-Login and store hashed admin credentials in the app config."""
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str) -> Optional[AdminUser]:
        if user_id == credentials.username:
            return AdminUser(username=user_id)
        return None

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"error": "Admin login required", "redirect": "/admin/login"}), 401

    if not credentials.password_hash.startswith(("pbkdf2:", "scrypt:")):
        credentials.password_hash = generate_password_hash(credentials.password_hash)

    app.config["ADMIN_CREDENTIALS"] = credentials
    logger.info("Admin login configured for '%s'", credentials.username)
    return credentials


def validate_credentials(credentials: AdminCredentials, username: str, password: str) -> bool:
    if username.lower() != credentials.username.lower():
        return False
    return check_password_hash(credentials.password_hash, password)


def _serializer(secret_key: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)


def issue_token(secret_key: str, user_id: str) -> str:
    """Sign an API token for ``user_id``."""
    return _serializer(secret_key).dumps({"uid": user_id})


def verify_token(secret_key: str, token: str, max_age: int) -> str:
    """Return the user id inside a valid token.

    Raises:
        AuthenticationError: the token is malformed, forged or expired.
    """
    try:
        payload = _serializer(secret_key).loads(token, max_age=max_age)
    except SignatureExpired:
        raise AuthenticationError("Session expired") from None
    except BadSignature:
        raise AuthenticationError("Invalid token") from None
    user_id = payload.get("uid") if isinstance(payload, dict) else None
    if not user_id:
        raise AuthenticationError("Invalid token")
    return user_id


def current_profile() -> Profile:
    """Resolve the bearer token of the current request to a profile."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise AuthenticationError("Authentication required")

    user_id = verify_token(
        current_app.config["SECRET_KEY"],
        token.strip(),
        current_app.config["TOKEN_MAX_AGE"],
    )
    profile = run_coroutine_sync(ProfileRepository.get(user_id))
    if profile is None:
        raise OnboardingIncompleteError("Profile not found")
    return profile


def user_required(view: Callable) -> Callable:
    """Require a signed-in user who finished onboarding. Sets ``g.profile``."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        profile = current_profile()
        if not profile.onboarding_completed:
            raise OnboardingIncompleteError("Finish onboarding first")
        g.profile = profile
        return view(*args, **kwargs)
    return wrapper
