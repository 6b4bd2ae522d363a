"""Coupon rewards with race-free inventory."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import aiosqlite

from inphrone.core import get_logger
from inphrone.core.constants import CouponClaimOutcome, NotificationDefaults, Tables
from inphrone.core.exceptions import NotFoundError, ServiceError, ValidationError
from inphrone.database.models import ClaimedCoupon, Coupon
from inphrone.database.repositories import CouponRepository
from inphrone.services.audit_service import AuditService
from inphrone.services.realtime import ChangeFeed

logger = get_logger(__name__)


@dataclass(slots=True)
class CouponClaimResult:
    outcome: CouponClaimOutcome
    coupon: Coupon


class CouponService:
    def __init__(self, feed: ChangeFeed, clock: Callable[[], datetime]) -> None:
        self.feed = feed
        self.clock = clock

    async def list_available(self, now: Optional[datetime] = None) -> List[Coupon]:
        now = now or self.clock()
        return [
            coupon for coupon in await CouponRepository.list_active()
            if coupon.expires_at is None or coupon.expires_at > now
        ]

    async def claim_coupon(
        self,
        coupon_id: int,
        user_id: str,
        now: Optional[datetime] = None,
    ) -> CouponClaimResult:
        """Claim one unit of a coupon. The inventory check and decrement are one write."""
        now = now or self.clock()
        try:
            async with CouponRepository.write_transaction() as conn:
                coupon = await CouponRepository.lock(conn, coupon_id)
                if coupon is None or not coupon.is_active:
                    raise NotFoundError("Coupon not found", redirect="/rewards")
                if await CouponRepository.has_claim(conn, coupon_id, user_id):
                    outcome = CouponClaimOutcome.ALREADY_CLAIMED
                elif coupon.expires_at is not None and coupon.expires_at <= now:
                    outcome = CouponClaimOutcome.EXPIRED
                elif await CouponRepository.take_one(conn, coupon_id, user_id, now):
                    outcome = CouponClaimOutcome.CLAIMED
                else:
                    outcome = CouponClaimOutcome.SOLD_OUT
        except aiosqlite.Error as exc:
            logger.error("Coupon claim failed: %s", exc, exc_info=True)
            raise ServiceError("Something went wrong, try again") from exc

        if outcome == CouponClaimOutcome.CLAIMED:
            logger.info("User %s claimed coupon %s", user_id, coupon_id)
            self.feed.publish(Tables.COUPONS, coupon_id, "UPDATE")
        return CouponClaimResult(outcome=outcome, coupon=await CouponRepository.get(coupon_id))

    async def my_coupons(self, user_id: str) -> List[ClaimedCoupon]:
        return await CouponRepository.claimed_by(user_id)

    async def expiring_soon(
        self,
        user_id: str,
        now: Optional[datetime] = None,
        days: int = NotificationDefaults.COUPON_EXPIRY_WARNING_DAYS,
    ) -> List[ClaimedCoupon]:
        now = now or self.clock()
        horizon = now + timedelta(days=days)
        return [
            coupon for coupon in await CouponRepository.claimed_by(user_id)
            if coupon.expires_at is not None and now < coupon.expires_at <= horizon
        ]

    async def create_coupon(
        self,
        actor: str,
        title: str,
        brand: str,
        code: str,
        total_quantity: int,
        description: Optional[str] = None,
        expires_at: Optional[datetime] = None,
    ) -> Coupon:
        if not (title or "").strip() or not (brand or "").strip() or not (code or "").strip():
            raise ValidationError("Title, brand and code are required")
        if total_quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        if expires_at is not None and expires_at.tzinfo is None:
            raise ValidationError("Expiry must include a timezone")

        coupon_id = await CouponRepository.create(
            title.strip(), brand.strip(), code.strip(), total_quantity, description, expires_at
        )
        await AuditService.log_action(
            admin_username=actor,
            action_type="CREATE_COUPON",
            entity_type="coupon",
            entity_id=coupon_id,
            new_value={"title": title, "brand": brand, "total_quantity": total_quantity},
            now=self.clock(),
        )
        self.feed.publish(Tables.COUPONS, coupon_id, "INSERT")
        return await CouponRepository.get(coupon_id)

    async def deactivate_coupon(self, actor: str, coupon_id: int) -> bool:
        if await CouponRepository.get(coupon_id) is None:
            raise NotFoundError("Coupon not found", redirect="/admin")
        if not await CouponRepository.deactivate(coupon_id):
            return False
        await AuditService.log_action(
            admin_username=actor,
            action_type="DEACTIVATE_COUPON",
            entity_type="coupon",
            entity_id=coupon_id,
            old_value={"is_active": True},
            new_value={"is_active": False},
            now=self.clock(),
        )
        self.feed.publish(Tables.COUPONS, coupon_id, "UPDATE")
        return True
