"""Per-user and per-session preference flags.

Owners are namespaced: ``user:<id>`` for values that follow the account,
``session:<id>`` for values that only last as long as a browser session.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from inphrone.core.constants import NotificationDefaults
from inphrone.database.base_repository import BaseRepository


def user_owner(user_id: str) -> str:
    return f"user:{user_id}"


def session_owner(session_id: str) -> str:
    return f"session:{session_id}"


class PreferenceStore(ABC):
    """Key-value preferences with optional expiry. Expired values read as absent."""

    @abstractmethod
    async def get(self, owner: str, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, owner: str, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, owner: str, key: str) -> None:
        ...

    @abstractmethod
    async def purge_expired(self) -> int:
        """Remove expired values. Returns how many were dropped."""


class SQLitePreferenceStore(PreferenceStore):
    """Preference store on the ``user_preferences`` table."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self.clock = clock

    async def get(self, owner: str, key: str) -> Optional[Any]:
        row = await BaseRepository.fetch_one(
            "SELECT value, expires_at FROM user_preferences WHERE owner=? AND key=?",
            (owner, key),
        )
        if row is None:
            return None
        if row["expires_at"] and datetime.fromisoformat(row["expires_at"]) <= self.clock():
            return None
        return json.loads(row["value"])

    async def set(self, owner: str, key: str, value: Any, ttl: Optional[timedelta] = None) -> None:
        expires_at = (self.clock() + ttl).isoformat() if ttl is not None else None
        await BaseRepository.execute(
            """
            INSERT INTO user_preferences (owner, key, value, expires_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(owner, key) DO UPDATE SET
                value=excluded.value,
                expires_at=excluded.expires_at,
                updated_at=CURRENT_TIMESTAMP
            """,
            (owner, key, json.dumps(value), expires_at),
        )

    async def delete(self, owner: str, key: str) -> None:
        await BaseRepository.execute(
            "DELETE FROM user_preferences WHERE owner=? AND key=?",
            (owner, key),
        )

    async def purge_expired(self) -> int:
        return await BaseRepository.execute(
            "DELETE FROM user_preferences WHERE expires_at IS NOT NULL AND expires_at <= ?",
            (self.clock().isoformat(),),
        )


class PushPromptPolicy:
    """Decides whether to offer push notifications to a user."""

    ENABLED = "push_notifications_enabled"
    DISMISSED = "push_prompt_dismissed"
    SHOWN = "push_prompt_shown"

    def __init__(
        self,
        store: PreferenceStore,
        cooldown: timedelta = timedelta(days=NotificationDefaults.PUSH_PROMPT_COOLDOWN_DAYS),
        session_ttl: timedelta = timedelta(hours=NotificationDefaults.SESSION_FLAG_TTL_HOURS),
    ) -> None:
        self.store = store
        self.cooldown = cooldown
        self.session_ttl = session_ttl

    async def should_show(
        self,
        user_id: str,
        session_id: str,
        supported: bool,
        permission: str,
        subscribed: bool,
    ) -> bool:
        if not supported or permission == "denied":
            return False
        user = user_owner(user_id)
        if subscribed:
            await self.store.set(user, self.ENABLED, True)
            return False
        if await self.store.get(user, self.ENABLED):
            return False
        if await self.store.get(user, self.DISMISSED):
            return False
        session = session_owner(session_id)
        if await self.store.get(session, self.SHOWN):
            return False
        await self.store.set(session, self.SHOWN, True, ttl=self.session_ttl)
        return True

    async def dismiss(self, user_id: str) -> None:
        await self.store.set(user_owner(user_id), self.DISMISSED, True, ttl=self.cooldown)

    async def enable(self, user_id: str) -> None:
        await self.store.set(user_owner(user_id), self.ENABLED, True)
        await self.store.delete(user_owner(user_id), self.DISMISSED)

    async def disable(self, user_id: str) -> None:
        await self.store.delete(user_owner(user_id), self.ENABLED)


class EmailBannerPolicy:
    """Hides the email verification banner for a while after dismissal."""

    DISMISSED = "email_banner_dismissed"

    def __init__(
        self,
        store: PreferenceStore,
        cooldown: timedelta = timedelta(hours=NotificationDefaults.EMAIL_BANNER_COOLDOWN_HOURS),
    ) -> None:
        self.store = store
        self.cooldown = cooldown

    async def should_show(self, user_id: str, email_verified: bool) -> bool:
        if email_verified:
            return False
        return not await self.store.get(user_owner(user_id), self.DISMISSED)

    async def dismiss(self, user_id: str) -> None:
        await self.store.set(user_owner(user_id), self.DISMISSED, True, ttl=self.cooldown)
