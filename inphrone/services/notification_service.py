"""Service for sending notifications to users."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from inphrone.core import get_logger
from inphrone.core.constants import EmailType, NotificationDefaults, Tables
from inphrone.core.exceptions import ApplicationError, NotFoundError
from inphrone.database.models import Notification
from inphrone.database.repositories import NotificationRepository, ProfileRepository
from inphrone.services.email_service import EmailService
from inphrone.services.realtime import ChangeFeed

logger = get_logger(__name__)


@dataclass(slots=True)
class NotificationResult:
    notification_id: int
    email_sent: bool


class NotificationService:
    """In-app notifications with optional email fan-out."""

    def __init__(self, email: EmailService, feed: ChangeFeed) -> None:
        self.email = email
        self.feed = feed

    async def notify(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str,
        action_url: Optional[str] = None,
        email_type: Optional[EmailType] = None,
        email_data: Optional[Mapping[str, Any]] = None,
    ) -> NotificationResult:
        """Store an in-app notification and, if the user allows it, email them.

        Email failures never propagate: they are logged and reported through
        ``NotificationResult.email_sent``.
        """
        notification_id = await NotificationRepository.create(
            user_id, title, message, notification_type, action_url
        )
        self.feed.publish(Tables.NOTIFICATIONS, notification_id, "INSERT")

        email_sent = False
        if email_type is not None:
            email_sent = await self.send_email(user_id, email_type, email_data or {})

        return NotificationResult(notification_id=notification_id, email_sent=email_sent)

    async def send_email(
        self,
        user_id: str,
        email_type: EmailType,
        data: Mapping[str, Any],
    ) -> bool:
        """Email a user unless they opted out. True when the provider accepted it."""
        profile = await ProfileRepository.get(user_id)
        if profile is None or not profile.email:
            return False
        if not profile.wants_email:
            logger.debug("User %s opted out of email, skipping %s", user_id, email_type.value)
            return False

        try:
            await self.email.send(email_type, profile.email, profile.full_name, data)
            return True
        except ApplicationError as e:
            logger.error(
                f"Failed to send {email_type.value} email to user {user_id}: {e}",
                exc_info=True,
                extra={"user_id": user_id, "email_type": email_type.value},
            )
            return False

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int = NotificationDefaults.LIST_LIMIT,
    ) -> List[Notification]:
        return await NotificationRepository.list_for_user(user_id, unread_only, limit)

    async def mark_read(self, notification_id: int, user_id: str) -> None:
        if not await NotificationRepository.mark_read(notification_id, user_id):
            raise NotFoundError("Notification not found", redirect="/notifications")
        self.feed.publish(Tables.NOTIFICATIONS, notification_id, "UPDATE")

    async def broadcast(
        self,
        user_ids: List[str],
        title: str,
        message: str,
        action_url: Optional[str] = None,
    ) -> Dict[str, int]:
        """Admin announcement to many users. Returns delivery counters."""
        stats = {"notified": 0, "emailed": 0}
        for user_id in user_ids:
            result = await self.notify(
                user_id,
                title,
                message,
                "broadcast",
                action_url,
                email_type=EmailType.BROADCAST,
                email_data={"title": title, "message": message, "actionUrl": action_url},
            )
            stats["notified"] += 1
            stats["emailed"] += int(result.email_sent)
        logger.info("Broadcast '%s' delivered: %s", title, stats)
        return stats
