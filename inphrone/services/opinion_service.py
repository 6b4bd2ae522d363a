"""Opinion feed, likes and moderation."""

from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from inphrone.core import get_logger
from inphrone.core.constants import EmailType, LikeOutcome, OpinionLimits, Tables, UserType
from inphrone.core.exceptions import NotFoundError, ValidationError
from inphrone.database.models import Opinion
from inphrone.database.repositories import OpinionRepository, ProfileRepository
from inphrone.services.audit_service import AuditService
from inphrone.services.gamification_service import GamificationService
from inphrone.services.notification_service import NotificationService
from inphrone.services.realtime import ChangeFeed

logger = get_logger(__name__)


class OpinionService:
    def __init__(
        self,
        gamification: GamificationService,
        notifications: NotificationService,
        feed: ChangeFeed,
        clock: Callable[[], datetime],
    ) -> None:
        self.gamification = gamification
        self.notifications = notifications
        self.feed = feed
        self.clock = clock

    async def create_opinion(self, user_id: str, category_id: int, title: str, content: str) -> Opinion:
        title = (title or "").strip()
        content = (content or "").strip()
        if not OpinionLimits.TITLE_MIN_LENGTH <= len(title) <= OpinionLimits.TITLE_MAX_LENGTH:
            raise ValidationError(
                f"Title must be {OpinionLimits.TITLE_MIN_LENGTH}-{OpinionLimits.TITLE_MAX_LENGTH} characters"
            )
        if not OpinionLimits.CONTENT_MIN_LENGTH <= len(content) <= OpinionLimits.CONTENT_MAX_LENGTH:
            raise ValidationError(
                f"Opinion must be {OpinionLimits.CONTENT_MIN_LENGTH}-"
                f"{OpinionLimits.CONTENT_MAX_LENGTH} characters"
            )
        if not await OpinionRepository.category_exists(category_id):
            raise NotFoundError("Category not found", redirect="/dashboard")

        now = self.clock()
        opinion_id = await OpinionRepository.create(user_id, category_id, title, content, now)
        self.feed.publish(Tables.OPINIONS, opinion_id, "INSERT")

        profile = await ProfileRepository.get(user_id)
        if profile is not None and profile.user_type == UserType.AUDIENCE.value:
            await self.gamification.record_contribution(user_id, now)

        return await OpinionRepository.get(opinion_id)

    async def list_opinions(
        self,
        category_id: Optional[int] = None,
        search: Optional[str] = None,
        sort: str = "recent",
        limit: int = OpinionLimits.PAGE_SIZE,
        offset: int = 0,
    ) -> List[Opinion]:
        if sort not in ("recent", "popular"):
            raise ValidationError(f"Unknown sort order: {sort}")
        limit = max(1, min(limit, OpinionLimits.MAX_PAGE_SIZE))
        return await OpinionRepository.search(
            category_id, (search or "").strip() or None, sort == "popular", limit, max(offset, 0)
        )

    async def like_opinion(self, opinion_id: int, user_id: str) -> LikeOutcome:
        opinion = await OpinionRepository.get(opinion_id)
        if opinion is None or opinion.is_deleted:
            raise NotFoundError("Opinion not found", redirect="/dashboard")
        if opinion.user_id == user_id:
            raise ValidationError("You cannot like your own opinion")

        if not await OpinionRepository.add_like(opinion_id, user_id, self.clock()):
            return LikeOutcome.ALREADY_LIKED

        self.feed.publish(Tables.OPINIONS, opinion_id, "UPDATE")

        liker = await ProfileRepository.get(user_id)
        liker_name = liker.display_name if liker else "Someone"
        liker_type = liker.user_type if liker else UserType.AUDIENCE.value
        industry = liker_type != UserType.AUDIENCE.value
        await self.notifications.notify(
            opinion.user_id,
            "Your opinion got a like",
            f'{liker_name} liked "{opinion.title}"',
            "opinion_liked",
            "/my-opinions",
            email_type=EmailType.INDUSTRY_RECOGNITION if industry else EmailType.OPINION_LIKED,
            email_data={"likerName": liker_name, "likerType": liker_type, "opinionTitle": opinion.title},
        )
        return LikeOutcome.LIKED

    async def moderate_opinion(
        self,
        opinion_id: int,
        actor: str,
        reason: str,
        ip_address: Optional[str] = None,
    ) -> bool:
        """Soft-delete an opinion. False if it was already removed."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A moderation reason is required")
        opinion = await OpinionRepository.get(opinion_id)
        if opinion is None:
            raise NotFoundError("Opinion not found", redirect="/admin")

        now = self.clock()
        if not await OpinionRepository.soft_delete(opinion_id, actor, reason, now):
            return False

        logger.info("Opinion %s removed by %s: %s", opinion_id, actor, reason)
        self.feed.publish(Tables.OPINIONS, opinion_id, "UPDATE")
        await self.notifications.notify(
            opinion.user_id,
            "Opinion removed",
            f'Your opinion "{opinion.title}" was removed: {reason}',
            "moderation",
            "/my-opinions",
        )
        await AuditService.log_action(
            admin_username=actor,
            action_type="MODERATE_OPINION",
            entity_type="opinion",
            entity_id=opinion_id,
            old_value={"is_deleted": False},
            new_value={"is_deleted": True},
            reason=reason,
            ip_address=ip_address,
            now=now,
        )
        return True
