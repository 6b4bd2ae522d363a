"""Tests for coupon rewards."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from inphrone.core.constants import CouponClaimOutcome
from inphrone.core.exceptions import NotFoundError, ValidationError


async def _coupon(services, quantity=2, expires_at=None):
    return await services.coupons.create_coupon(
        "admin", "Movie night", "CineMax", "CINE-2025", quantity,
        description="Two tickets", expires_at=expires_at,
    )


@pytest.mark.asyncio
async def test_claim_once_per_user(services, make_profile):
    """Test that each user claims a coupon once."""
    await make_profile("alice")
    coupon = await _coupon(services)

    first = await services.coupons.claim_coupon(coupon.id, "alice")
    second = await services.coupons.claim_coupon(coupon.id, "alice")

    assert first.outcome == CouponClaimOutcome.CLAIMED
    assert first.coupon.remaining == 1
    assert second.outcome == CouponClaimOutcome.ALREADY_CLAIMED
    mine = await services.coupons.my_coupons("alice")
    assert [c.code for c in mine] == ["CINE-2025"]


@pytest.mark.asyncio
async def test_concurrent_claims_never_oversell(services, make_profile):
    """Test that inventory never goes below zero under contention."""
    users = [await make_profile(f"user{i}") for i in range(6)]
    coupon = await _coupon(services, quantity=2)

    results = await asyncio.gather(*(services.coupons.claim_coupon(coupon.id, u) for u in users))

    outcomes = [r.outcome for r in results]
    assert outcomes.count(CouponClaimOutcome.CLAIMED) == 2
    assert outcomes.count(CouponClaimOutcome.SOLD_OUT) == 4
    assert await services.coupons.list_available() == []


@pytest.mark.asyncio
async def test_expired_and_inactive_coupons(services, make_profile, clock):
    """Test expired coupons and deactivated coupons."""
    await make_profile("alice")
    soon = clock() + timedelta(hours=1)
    expiring = await _coupon(services, expires_at=soon)
    retired = await _coupon(services)

    assert await services.coupons.deactivate_coupon("admin", retired.id) is True
    assert await services.coupons.deactivate_coupon("admin", retired.id) is False
    with pytest.raises(NotFoundError):
        await services.coupons.claim_coupon(retired.id, "alice")

    clock.advance(hours=2)
    result = await services.coupons.claim_coupon(expiring.id, "alice")
    assert result.outcome == CouponClaimOutcome.EXPIRED
    assert await services.coupons.list_available() == []


@pytest.mark.asyncio
async def test_expiring_soon(services, make_profile, clock):
    """Test the warning list of claimed coupons about to expire."""
    await make_profile("alice")
    short = await _coupon(services, expires_at=clock() + timedelta(days=2))
    long = await _coupon(services, expires_at=clock() + timedelta(days=30))
    await services.coupons.claim_coupon(short.id, "alice")
    await services.coupons.claim_coupon(long.id, "alice")

    warnings = await services.coupons.expiring_soon("alice")

    assert [c.coupon_id for c in warnings] == [short.id]


@pytest.mark.asyncio
async def test_create_coupon_validation(services):
    """Test coupon creation checks."""
    with pytest.raises(ValidationError):
        await _coupon(services, quantity=0)
    with pytest.raises(ValidationError):
        await _coupon(services, expires_at=datetime(2025, 2, 1))
    coupon = await _coupon(services, expires_at=datetime(2025, 2, 1, tzinfo=timezone.utc))
    assert coupon.expires_at == datetime(2025, 2, 1, tzinfo=timezone.utc)
