"""Weekly contribution streaks, InphroSync day streaks and badges."""

from __future__ import annotations

from datetime import date, datetime, timedelta, tzinfo
from datetime import timezone as dt_timezone
from typing import Callable, List, Optional, Tuple

from inphrone.core import get_logger
from inphrone.core.constants import EmailType, StreakMilestones, StreakTier, Tables, UserType
from inphrone.core.exceptions import NotFoundError
from inphrone.database.gamification_repository import GamificationRepository
from inphrone.database.models import Badge, StreakRecord
from inphrone.database.repositories import ProfileRepository
from inphrone.services.notification_service import NotificationService
from inphrone.services.realtime import ChangeFeed

logger = get_logger(__name__)

Milestone = Tuple[int, StreakTier, str]

_TIER_RANK = {StreakTier.NONE: 0, StreakTier.SILVER: 1, StreakTier.GOLD: 2, StreakTier.DIAMOND: 3}


def tier_for_weeks(weeks: int) -> StreakTier:
    tier = StreakTier.NONE
    for threshold, milestone_tier, _name in StreakMilestones.MILESTONES:
        if weeks >= threshold:
            tier = milestone_tier
    return tier


def next_milestone(weeks: int) -> Milestone:
    """First milestone above ``weeks``; the last one once all are reached."""
    for milestone in StreakMilestones.MILESTONES:
        if weeks < milestone[0]:
            return milestone
    return StreakMilestones.MILESTONES[-1]


def milestone_progress(weeks: int) -> int:
    target = next_milestone(weeks)[0]
    return int(min(weeks / target * 100, 100))


def _week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())


class GamificationService:
    """Streak and badge bookkeeping for audience users."""

    def __init__(
        self,
        notifications: NotificationService,
        feed: ChangeFeed,
        clock: Callable[[], datetime],
        timezone: tzinfo = dt_timezone.utc,
    ) -> None:
        self.notifications = notifications
        self.feed = feed
        self.clock = clock
        self.timezone = timezone

    def today(self, now: Optional[datetime] = None) -> date:
        return (now or self.clock()).astimezone(self.timezone).date()

    async def _load(self, user_id: str) -> StreakRecord:
        return await GamificationRepository.get_streak(user_id) or StreakRecord(user_id=user_id)

    async def get_streak(self, user_id: str) -> Optional[StreakRecord]:
        """Zeroed defaults for audience users without a row; None for industry users."""
        profile = await ProfileRepository.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found", redirect="/onboarding")
        if profile.user_type != UserType.AUDIENCE.value:
            return None
        return await self._load(user_id)

    async def list_badges(self, user_id: str) -> List[Badge]:
        return await GamificationRepository.list_badges(user_id)

    async def record_contribution(self, user_id: str, when: Optional[datetime] = None) -> StreakRecord:
        """Count a contribution towards the user's ISO-week streak."""
        when = when or self.clock()
        today = self.today(when)

        async with GamificationRepository.write_transaction() as conn:
            record = await GamificationRepository.lock_streak(conn, user_id) or StreakRecord(user_id=user_id)
            previous_tier = StreakTier(record.streak_tier)

            if record.last_activity_date is None:
                record.current_streak_weeks = 1
            else:
                weeks_apart = (_week_start(today) - _week_start(record.last_activity_date)).days // 7
                if weeks_apart == 1:
                    record.current_streak_weeks += 1
                elif weeks_apart > 1:
                    record.current_streak_weeks = 1

            record.total_weekly_contributions += 1
            if record.last_activity_date is None or today > record.last_activity_date:
                record.last_activity_date = today
            record.longest_streak_weeks = max(record.longest_streak_weeks, record.current_streak_weeks)
            new_tier = tier_for_weeks(record.current_streak_weeks)
            record.streak_tier = new_tier.value

            await GamificationRepository.save_streak(conn, record, when)

        self.feed.publish(Tables.STREAKS, user_id, "UPDATE")

        if _TIER_RANK[new_tier] > _TIER_RANK[previous_tier]:
            logger.info("User %s reached %s tier (%d weeks)", user_id, new_tier.value, record.current_streak_weeks)
            milestone = next(m for m in StreakMilestones.MILESTONES if m[1] == new_tier)
            await self.award_badge(
                user_id,
                f"streak_{new_tier.value}",
                milestone[2],
                f"Kept a {milestone[0]}-week contribution streak",
                metadata={"weeks": record.current_streak_weeks},
            )
            await self.notifications.send_email(
                user_id,
                EmailType.STREAK_ACHIEVEMENT,
                {"streakCount": record.current_streak_weeks, "tier": new_tier.value},
            )
        return record

    async def record_inphrosync_participation(self, user_id: str, on_date: date) -> StreakRecord:
        async with GamificationRepository.write_transaction() as conn:
            record = await GamificationRepository.lock_streak(conn, user_id) or StreakRecord(user_id=user_id)
            last = record.inphrosync_last_participation

            if last is not None and on_date <= last:
                return record
            if last is not None and on_date - last == timedelta(days=1):
                record.inphrosync_streak_days += 1
            else:
                record.inphrosync_streak_days = 1

            record.inphrosync_last_participation = on_date
            record.inphrosync_longest_streak = max(record.inphrosync_longest_streak, record.inphrosync_streak_days)
            await GamificationRepository.save_streak(conn, record, self.clock())

        self.feed.publish(Tables.STREAKS, user_id, "UPDATE")
        return record

    async def award_badge(
        self,
        user_id: str,
        badge_type: str,
        name: str,
        description: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> bool:
        """Award a badge once. Returns True when it is new."""
        created = await GamificationRepository.insert_badge(
            user_id, badge_type, name, description, metadata or {}, self.clock()
        )
        if not created:
            return False

        self.feed.publish(Tables.BADGES, user_id, "INSERT")
        await self.notifications.notify(
            user_id,
            f"New badge: {name}",
            description or "You earned a new badge!",
            "badge",
            "/profile",
            email_type=EmailType.BADGE_EARNED,
            email_data={"badgeName": name, "badgeDescription": description},
        )
        return True
