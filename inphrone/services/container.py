"""Wiring of the service graph."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiohttp

from inphrone.config import Config
from inphrone.core.exceptions import ConfigurationError
from inphrone.services.cache import MultiLevelCache, init_cache
from inphrone.services.coupon_service import CouponService
from inphrone.services.email_service import EmailService
from inphrone.services.gamification_service import GamificationService
from inphrone.services.inphrosync_service import InphroSyncService
from inphrone.services.notification_service import NotificationService
from inphrone.services.opinion_service import OpinionService
from inphrone.services.preferences import (
    EmailBannerPolicy,
    PreferenceStore,
    PushPromptPolicy,
    SQLitePreferenceStore,
)
from inphrone.services.realtime import ChangeFeed
from inphrone.services.slot_scheduler import SlotScheduler
from inphrone.services.your_turn import YourTurnService


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Services:
    config: Config
    clock: Callable[[], datetime]
    feed: ChangeFeed
    cache: MultiLevelCache
    email: EmailService
    notifications: NotificationService
    gamification: GamificationService
    your_turn: YourTurnService
    scheduler: SlotScheduler
    inphrosync: InphroSyncService
    opinions: OpinionService
    coupons: CouponService
    preferences: PreferenceStore
    push_prompt: PushPromptPolicy
    email_banner: EmailBannerPolicy


def build_services(
    config: Config,
    feed: Optional[ChangeFeed] = None,
    clock: Optional[Callable[[], datetime]] = None,
    http_session: Optional[aiohttp.ClientSession] = None,
) -> Services:
    """Build every service around one feed, one cache and one clock."""
    try:
        slot_zone = ZoneInfo(config.slot_timezone)
    except ZoneInfoNotFoundError as exc:
        raise ConfigurationError(f"Unknown SLOT_TIMEZONE: {config.slot_timezone}") from exc

    clock = clock or utc_now
    feed = feed or ChangeFeed()
    cache = init_cache(
        hot_ttl=config.cache_ttl_hot,
        warm_ttl=config.cache_ttl_warm,
        cold_ttl=config.cache_ttl_cold,
    )
    email = EmailService(
        api_key=config.resend_api_key,
        sender=config.resend_from,
        api_url=config.resend_api_url,
        site_url=config.public_site_url,
        session=http_session,
        clock=clock,
    )
    notifications = NotificationService(email, feed)
    gamification = GamificationService(notifications, feed, clock, slot_zone)
    your_turn = YourTurnService(
        feed,
        notifications,
        clock,
        slot_zone,
        slot_times=config.slot_times,
        window_seconds=config.slot_window_seconds,
        poll_interval=config.slot_poll_interval,
    )
    preferences = SQLitePreferenceStore(clock)

    return Services(
        config=config,
        clock=clock,
        feed=feed,
        cache=cache,
        email=email,
        notifications=notifications,
        gamification=gamification,
        your_turn=your_turn,
        scheduler=SlotScheduler(your_turn, interval=config.scheduler_interval, preferences=preferences),
        inphrosync=InphroSyncService(cache, gamification, feed, clock, slot_zone),
        opinions=OpinionService(gamification, notifications, feed, clock),
        coupons=CouponService(feed, clock),
        preferences=preferences,
        push_prompt=PushPromptPolicy(preferences),
        email_banner=EmailBannerPolicy(preferences),
    )
