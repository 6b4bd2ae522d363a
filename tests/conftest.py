"""Pytest configuration and fixtures."""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from inphrone.config import load_config
from inphrone.database import close_db_pool, init_db_pool, run_migrations
from inphrone.database.repositories import ProfileRepository
from inphrone.database.your_turn_repository import YourTurnRepository
from inphrone.services.container import build_services
from inphrone.services.realtime import ChangeFeed

TODAY = date(2025, 1, 15)
SLOT_TIMES = ("09:00", "14:00", "19:00")


class FakeClock:
    """Settable UTC clock injected into the services."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0, second: int = 0, day: Optional[date] = None) -> datetime:
        day = day or self.now.date()
        self.now = datetime(day.year, day.month, day.day, hour, minute, second, tzinfo=timezone.utc)
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeResponse:
    def __init__(self, status: int, body: Dict[str, Any]) -> None:
        self.status = status
        self._body = body

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    async def text(self) -> str:
        return str(self._body)

    async def json(self) -> Dict[str, Any]:
        return self._body


class FakeEmailSession:
    """Stands in for ``aiohttp.ClientSession`` and records every POST."""

    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.requests: List[Dict[str, Any]] = []

    def post(self, url: str, json: Dict[str, Any], headers: Dict[str, str]) -> FakeResponse:
        self.requests.append({"url": url, "json": json, "headers": headers})
        return FakeResponse(self.status, {"id": f"msg_{len(self.requests)}"})

    def sent_types(self) -> List[str]:
        return [
            next(tag["value"] for tag in request["json"]["tags"] if tag["name"] == "email_type")
            for request in self.requests
        ]


@pytest.fixture
def test_config(tmp_path):
    """Configuration pointing at a throwaway database."""
    return replace(
        load_config(),
        environment="test",
        database_path=str(tmp_path / "inphrone_test.sqlite"),
        db_pool_size=10,
        secret_key="test-secret-key",
        admin_username="admin",
        admin_password="s3cret",
        slot_timezone="UTC",
        slot_times=SLOT_TIMES,
        slot_window_seconds=20,
        slot_poll_interval=0.05,
        scheduler_interval=0.05,
        resend_api_key="re_test_key",
        resend_from="Inphrone <test@inphrone.com>",
        public_site_url="https://inphrone.test",
        vapid_public_key="BTestVapidKey",
    )


@pytest.fixture
async def db(test_config):
    """Create test database."""
    pool = await init_db_pool(
        database_path=test_config.database_path,
        pool_size=test_config.db_pool_size,
        busy_timeout_ms=test_config.db_busy_timeout,
    )
    await run_migrations(pool)
    yield pool
    await close_db_pool()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def feed():
    return ChangeFeed()


@pytest.fixture
def email_session():
    return FakeEmailSession()


@pytest.fixture
async def services(db, test_config, clock, feed, email_session):
    """Full service graph on the test database with a fake clock."""
    return build_services(test_config, feed=feed, clock=clock, http_session=email_session)


@pytest.fixture
def make_profile(db):
    """Factory creating onboarded profiles."""
    async def _make(
        user_id: str,
        user_type: str = "audience",
        full_name: Optional[str] = None,
        email_notifications: bool = True,
    ) -> str:
        await ProfileRepository.upsert(
            user_id,
            f"{user_id}@example.com",
            full_name=full_name or user_id.title(),
            user_type=user_type,
            settings={"email_notifications": email_notifications},
        )
        return user_id
    return _make


@pytest.fixture
async def todays_slots(db):
    """Today's three slots keyed by time."""
    await YourTurnRepository.ensure_slots(TODAY, SLOT_TIMES)
    return {slot.slot_time: slot for slot in await YourTurnRepository.get_slots_for_date(TODAY)}
