"""Helpers shared by the JSON blueprints."""

from __future__ import annotations

from datetime import date
from typing import Any, Awaitable, Dict, Iterable, Optional, TypeVar

from flask import current_app, jsonify, request

from inphrone.core.exceptions import ValidationError
from inphrone.services.async_runner import run_coroutine_sync
from inphrone.services.container import Services

T = TypeVar("T")


def services() -> Services:
    return current_app.config["SERVICES"]


def run(coro: Awaitable[T]) -> T:
    """Run a service coroutine on the main loop and wait for it."""
    return run_coroutine_sync(coro)


def json_body() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Expected a JSON object body")
    return data


def require(data: Dict[str, Any], *fields: str) -> None:
    missing = [name for name in fields if data.get(name) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def int_arg(name: str, default: int) -> int:
    value = request.args.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer") from None


def date_arg(name: str) -> Optional[date]:
    value = request.args.get(name)
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationError(f"'{name}' must be an ISO date") from None


def outcome_response(payload: Dict[str, Any], outcome: Any, accepted: Iterable[Any], status: int = 200):
    """Accepted outcomes get ``status``; the rest are conflicts (409)."""
    payload = {"outcome": outcome.value, **payload}
    return jsonify(payload), (status if outcome in set(accepted) else 409)
