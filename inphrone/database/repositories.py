"""Database access layer helpers."""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, List, Optional

import aiosqlite

from inphrone.core.constants import UserRole, UserType
from inphrone.database.base_repository import BaseRepository
from inphrone.database.models import (
    ClaimedCoupon,
    Coupon,
    Notification,
    Opinion,
    Profile,
    format_timestamp,
)


class ProfileRepository(BaseRepository):
    """Repository for user profiles."""

    @staticmethod
    async def get(user_id: str) -> Optional[Profile]:
        row = await BaseRepository.fetch_one(
            """
            SELECT id, email, full_name, user_type, role, onboarding_completed, settings
            FROM profiles WHERE id=?
            """,
            (user_id,),
        )
        return Profile.from_row(row) if row else None

    @staticmethod
    async def upsert(
        user_id: str,
        email: str,
        full_name: Optional[str] = None,
        user_type: str = UserType.AUDIENCE.value,
        role: str = UserRole.USER.value,
        onboarding_completed: bool = True,
        settings: Optional[Dict[str, Any]] = None,
    ) -> None:
        await BaseRepository.execute(
            """
            INSERT INTO profiles (id, email, full_name, user_type, role, onboarding_completed, settings)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                email=excluded.email,
                full_name=excluded.full_name,
                user_type=excluded.user_type,
                role=excluded.role,
                onboarding_completed=excluded.onboarding_completed,
                settings=excluded.settings
            """,
            (
                user_id,
                email,
                full_name,
                user_type,
                role,
                1 if onboarding_completed else 0,
                json.dumps(settings or {}),
            ),
        )

    @staticmethod
    async def list_ids(user_type: Optional[str] = None) -> List[str]:
        if user_type is None:
            return await BaseRepository.fetch_column("SELECT id FROM profiles ORDER BY created_at")
        return await BaseRepository.fetch_column(
            "SELECT id FROM profiles WHERE user_type=? ORDER BY created_at",
            (user_type,),
        )

    @staticmethod
    async def count_by_type() -> Dict[str, int]:
        rows = await BaseRepository.fetch_all(
            "SELECT user_type, COUNT(*) AS total FROM profiles GROUP BY user_type"
        )
        return {row["user_type"]: row["total"] for row in rows}


class OpinionRepository(BaseRepository):
    """Repository for opinions, categories and likes."""

    _SELECT = """
        SELECT o.id, o.user_id, o.category_id, c.name AS category_name, o.title,
               o.content, o.likes_count, o.is_deleted, o.created_at
        FROM opinions o
        LEFT JOIN categories c ON c.id = o.category_id
    """

    @staticmethod
    async def category_exists(category_id: int) -> bool:
        value = await BaseRepository.fetch_value(
            "SELECT id FROM categories WHERE id=? AND is_active=1",
            (category_id,),
        )
        return value is not None

    @staticmethod
    async def list_categories() -> List[Dict[str, Any]]:
        rows = await BaseRepository.fetch_all(
            "SELECT id, name, description FROM categories WHERE is_active=1 ORDER BY id"
        )
        return [dict(row) for row in rows]

    @staticmethod
    async def create(
        user_id: str,
        category_id: int,
        title: str,
        content: str,
        now: datetime,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO opinions (user_id, category_id, title, content, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, category_id, title, content, now.isoformat()),
        )

    @staticmethod
    async def get(opinion_id: int) -> Optional[Opinion]:
        row = await BaseRepository.fetch_one(
            f"{OpinionRepository._SELECT} WHERE o.id=?",
            (opinion_id,),
        )
        return Opinion.from_row(row) if row else None

    @staticmethod
    async def search(
        category_id: Optional[int],
        search: Optional[str],
        popular: bool,
        limit: int,
        offset: int,
    ) -> List[Opinion]:
        query = f"{OpinionRepository._SELECT} WHERE o.is_deleted=0"
        params: List[Any] = []

        if category_id is not None:
            query += " AND o.category_id=?"
            params.append(category_id)

        if search:
            query += " AND (o.title LIKE ? OR o.content LIKE ?)"
            pattern = f"%{search}%"
            params.extend([pattern, pattern])

        if popular:
            query += " ORDER BY o.likes_count DESC, o.created_at DESC"
        else:
            query += " ORDER BY o.created_at DESC, o.id DESC"
        query += " LIMIT ? OFFSET ?"
        params.extend([limit, offset])

        rows = await BaseRepository.fetch_all(query, params)
        return [Opinion.from_row(row) for row in rows]

    @staticmethod
    async def add_like(opinion_id: int, user_id: str, now: datetime) -> bool:
        """Record a like and bump the counter. False when already liked."""
        async with BaseRepository.write_transaction() as conn:
            cursor = await conn.execute(
                "INSERT OR IGNORE INTO opinion_likes (opinion_id, user_id, created_at) VALUES (?, ?, ?)",
                (opinion_id, user_id, now.isoformat()),
            )
            if cursor.rowcount != 1:
                return False
            await conn.execute(
                "UPDATE opinions SET likes_count=likes_count+1 WHERE id=?",
                (opinion_id,),
            )
            return True

    @staticmethod
    async def soft_delete(opinion_id: int, actor: str, reason: str, now: datetime) -> bool:
        affected = await BaseRepository.execute(
            """
            UPDATE opinions
            SET is_deleted=1, deleted_by=?, deleted_at=?, deletion_reason=?
            WHERE id=? AND is_deleted=0
            """,
            (actor, now.isoformat(), reason, opinion_id),
        )
        return affected == 1


class CouponRepository(BaseRepository):
    """Repository for coupon inventory and user claims."""

    _SELECT = """
        SELECT id, title, brand, description, total_quantity, claimed_count, expires_at, is_active
        FROM coupons
    """

    @staticmethod
    async def create(
        title: str,
        brand: str,
        code: str,
        total_quantity: int,
        description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO coupons (title, brand, code, description, total_quantity, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (title, brand, code, description, total_quantity, format_timestamp(expires_at)),
        )

    @staticmethod
    async def get(coupon_id: int) -> Optional[Coupon]:
        row = await BaseRepository.fetch_one(f"{CouponRepository._SELECT} WHERE id=?", (coupon_id,))
        return Coupon.from_row(row) if row else None

    @staticmethod
    async def list_active() -> List[Coupon]:
        rows = await BaseRepository.fetch_all(
            f"{CouponRepository._SELECT} WHERE is_active=1 AND claimed_count < total_quantity ORDER BY id"
        )
        return [Coupon.from_row(row) for row in rows]

    @staticmethod
    async def lock(conn: aiosqlite.Connection, coupon_id: int) -> Optional[Coupon]:
        cursor = await conn.execute(f"{CouponRepository._SELECT} WHERE id=?", (coupon_id,))
        row = await cursor.fetchone()
        return Coupon.from_row(row) if row else None

    @staticmethod
    async def has_claim(conn: aiosqlite.Connection, coupon_id: int, user_id: str) -> bool:
        cursor = await conn.execute(
            "SELECT 1 FROM user_coupons WHERE coupon_id=? AND user_id=?",
            (coupon_id, user_id),
        )
        return await cursor.fetchone() is not None

    @staticmethod
    async def take_one(
        conn: aiosqlite.Connection,
        coupon_id: int,
        user_id: str,
        now: datetime,
    ) -> bool:
        """Decrement inventory and record the claim. False when sold out."""
        cursor = await conn.execute(
            """
            UPDATE coupons SET claimed_count=claimed_count+1
            WHERE id=? AND is_active=1 AND claimed_count < total_quantity
            """,
            (coupon_id,),
        )
        if cursor.rowcount != 1:
            return False
        await conn.execute(
            """
            INSERT INTO user_coupons (user_id, coupon_id, code, claimed_at)
            SELECT ?, id, code, ? FROM coupons WHERE id=?
            """,
            (user_id, now.isoformat(), coupon_id),
        )
        return True

    @staticmethod
    async def claimed_by(user_id: str) -> List[ClaimedCoupon]:
        rows = await BaseRepository.fetch_all(
            """
            SELECT uc.coupon_id, c.title, c.brand, uc.code, uc.claimed_at, c.expires_at
            FROM user_coupons uc
            JOIN coupons c ON c.id = uc.coupon_id
            WHERE uc.user_id=?
            ORDER BY uc.claimed_at DESC
            """,
            (user_id,),
        )
        return [ClaimedCoupon.from_row(row) for row in rows]

    @staticmethod
    async def deactivate(coupon_id: int) -> bool:
        affected = await BaseRepository.execute(
            "UPDATE coupons SET is_active=0 WHERE id=? AND is_active=1",
            (coupon_id,),
        )
        return affected == 1


class NotificationRepository(BaseRepository):
    """Repository for in-app notifications."""

    @staticmethod
    async def create(
        user_id: str,
        title: str,
        message: str,
        notification_type: str,
        action_url: Optional[str] = None,
    ) -> int:
        return await BaseRepository.insert(
            """
            INSERT INTO notifications (user_id, title, message, type, action_url)
            VALUES (?, ?, ?, ?, ?)
            """,
            (user_id, title, message, notification_type, action_url),
        )

    @staticmethod
    async def list_for_user(user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        query = """
            SELECT id, user_id, title, message, type, action_url, is_read, created_at
            FROM notifications WHERE user_id=?
        """
        if unread_only:
            query += " AND is_read=0"
        query += " ORDER BY created_at DESC, id DESC LIMIT ?"
        rows = await BaseRepository.fetch_all(query, (user_id, limit))
        return [Notification.from_row(row) for row in rows]

    @staticmethod
    async def mark_read(notification_id: int, user_id: str) -> bool:
        affected = await BaseRepository.execute(
            "UPDATE notifications SET is_read=1 WHERE id=? AND user_id=?",
            (notification_id, user_id),
        )
        return affected == 1


class PushSubscriptionRepository(BaseRepository):
    """Stores browser Push API subscriptions."""

    @staticmethod
    async def subscribe(user_id: str, endpoint: str, p256dh: str, auth: str) -> None:
        await BaseRepository.execute(
            """
            INSERT INTO push_subscriptions (user_id, endpoint, p256dh, auth)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(endpoint) DO UPDATE SET
                user_id=excluded.user_id,
                p256dh=excluded.p256dh,
                auth=excluded.auth
            """,
            (user_id, endpoint, p256dh, auth),
        )

    @staticmethod
    async def unsubscribe(user_id: str, endpoint: Optional[str] = None) -> int:
        if endpoint is None:
            return await BaseRepository.execute(
                "DELETE FROM push_subscriptions WHERE user_id=?",
                (user_id,),
            )
        return await BaseRepository.execute(
            "DELETE FROM push_subscriptions WHERE user_id=? AND endpoint=?",
            (user_id, endpoint),
        )

    @staticmethod
    async def is_subscribed(user_id: str) -> bool:
        value = await BaseRepository.fetch_value(
            "SELECT 1 FROM push_subscriptions WHERE user_id=? LIMIT 1",
            (user_id,),
        )
        return value is not None


class AdminStatsRepository(BaseRepository):
    """Aggregate counters for the admin dashboard and public landing page."""

    @staticmethod
    async def public_counts() -> Dict[str, int]:
        row = await BaseRepository.fetch_one(
            """
            SELECT
                (SELECT COUNT(*) FROM profiles WHERE user_type='audience') AS audience,
                (SELECT COUNT(*) FROM profiles WHERE user_type!='audience') AS industry,
                (SELECT COUNT(*) FROM opinions WHERE is_deleted=0) AS opinions
            """
        )
        return {"audience": row["audience"], "industry": row["industry"], "opinions": row["opinions"]}

    @staticmethod
    async def dashboard() -> Dict[str, Any]:
        row = await BaseRepository.fetch_one(
            """
            SELECT
                (SELECT COUNT(*) FROM profiles) AS users,
                (SELECT COUNT(*) FROM opinions WHERE is_deleted=0) AS opinions,
                (SELECT COUNT(*) FROM opinions WHERE is_deleted=1) AS removed_opinions,
                (SELECT COUNT(*) FROM your_turn_questions WHERE is_deleted=0) AS questions,
                (SELECT COUNT(*) FROM your_turn_votes) AS votes,
                (SELECT COUNT(*) FROM your_turn_slots WHERE status='won') AS slots_won,
                (SELECT COUNT(*) FROM your_turn_slots WHERE status='expired') AS slots_expired,
                (SELECT COUNT(*) FROM inphrosync_responses) AS inphrosync_responses,
                (SELECT COUNT(*) FROM user_coupons) AS coupons_claimed
            """
        )
        return dict(row)
