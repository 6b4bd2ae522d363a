"""InphroSync: three daily micro-poll questions and their aggregates."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from datetime import timezone as dt_timezone
from typing import Any, Callable, Dict, List, Optional

from inphrone.core import get_logger
from inphrone.core.constants import ResponseOutcome, Tables, UserType
from inphrone.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from inphrone.database.inphrosync_repository import InphroSyncRepository
from inphrone.database.models import PollQuestion
from inphrone.database.repositories import ProfileRepository
from inphrone.services.cache import CacheLevel, MultiLevelCache
from inphrone.services.gamification_service import GamificationService
from inphrone.services.realtime import ChangeFeed

logger = get_logger(__name__)


@dataclass(slots=True)
class ResponseResult:
    outcome: ResponseOutcome
    streak_days: int = 0


def percentage(count: int, total: int) -> int:
    if total <= 0:
        return 0
    return round(count / total * 100)


class InphroSyncService:
    """Daily poll answers, results and yesterday's insights."""

    def __init__(
        self,
        cache: MultiLevelCache,
        gamification: GamificationService,
        feed: ChangeFeed,
        clock: Callable[[], datetime],
        timezone: tzinfo = dt_timezone.utc,
    ) -> None:
        self.cache = cache
        self.gamification = gamification
        self.feed = feed
        self.clock = clock
        self.timezone = timezone

    def today(self) -> date:
        return self.clock().astimezone(self.timezone).date()

    async def get_daily_questions(self) -> List[PollQuestion]:
        return await InphroSyncRepository.get_active_questions()

    async def submit_response(
        self,
        user_id: str,
        question_type: str,
        option: str,
        on_date: Optional[date] = None,
    ) -> ResponseResult:
        """Record one answer per user, question type and day. Audience users only."""
        on_date = on_date or self.today()
        profile = await ProfileRepository.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found", redirect="/onboarding")
        if profile.user_type != UserType.AUDIENCE.value:
            raise AuthorizationError("InphroSync is for audience members")

        question = await InphroSyncRepository.get_question(question_type)
        if question is None:
            raise ValidationError(f"Unknown question type: {question_type}")
        if option not in question.option_ids():
            raise ValidationError(f"Unknown option for {question_type}: {option}")

        if not await InphroSyncRepository.insert_response(user_id, question_type, option, on_date):
            return ResponseResult(outcome=ResponseOutcome.ALREADY_ANSWERED)

        self.cache.invalidate_prefix(f"inphrosync:{on_date.isoformat()}")
        self.feed.publish(Tables.INPHROSYNC_RESPONSES, user_id, "INSERT")
        streak = await self.gamification.record_inphrosync_participation(user_id, on_date)
        return ResponseResult(outcome=ResponseOutcome.RECORDED, streak_days=streak.inphrosync_streak_days)

    async def get_results(self, on_date: Optional[date] = None) -> Dict[str, Dict[str, Any]]:
        """Per question type: total plus per-option count, percentage and bar width."""
        on_date = on_date or self.today()

        async def load() -> Dict[str, Dict[str, Any]]:
            questions = await InphroSyncRepository.get_active_questions()
            counts = await InphroSyncRepository.option_counts(on_date)
            results: Dict[str, Dict[str, Any]] = {}
            for question in questions:
                per_option = counts.get(question.question_type, {})
                total = sum(per_option.values())
                top = max(per_option.values(), default=0)
                results[question.question_type] = {
                    "total": total,
                    "options": [
                        {
                            "id": opt["id"],
                            "label": opt["label"],
                            "count": per_option.get(opt["id"], 0),
                            "percentage": percentage(per_option.get(opt["id"], 0), total),
                            "width": percentage(per_option.get(opt["id"], 0), top),
                        }
                        for opt in question.options
                    ],
                }
            return results

        return await self.cache.get_or_set(
            f"inphrosync:{on_date.isoformat()}:results", load, CacheLevel.HOT
        )

    async def yesterday_insights(self, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """The most chosen option of each question answered yesterday."""
        yesterday = (today or self.today()) - timedelta(days=1)

        async def load() -> List[Dict[str, Any]]:
            questions = {q.question_type: q for q in await InphroSyncRepository.get_active_questions()}
            counts = await InphroSyncRepository.option_counts(yesterday)
            insights = []
            for question_type, per_option in counts.items():
                total = sum(per_option.values())
                if total == 0:
                    continue
                top_option, top_count = max(per_option.items(), key=lambda item: item[1])
                question = questions.get(question_type)
                label = next(
                    (opt["label"] for opt in question.options if opt["id"] == top_option),
                    top_option,
                ) if question else top_option
                insights.append({
                    "question_type": question_type,
                    "question_text": question.question_text if question else question_type,
                    "top_option": top_option,
                    "top_label": label,
                    "count": top_count,
                    "total": total,
                    "percentage": percentage(top_count, total),
                })
            insights.sort(key=lambda item: questions[item["question_type"]].display_order
                          if item["question_type"] in questions else 0)
            return insights

        return await self.cache.get_or_set(
            f"inphrosync:{yesterday.isoformat()}:insights", load, CacheLevel.WARM
        )

    async def daily_progress(self, user_id: str, on_date: Optional[date] = None) -> Dict[str, int]:
        on_date = on_date or self.today()
        questions = await InphroSyncRepository.get_active_questions()
        answered = set(await InphroSyncRepository.answered_types(user_id, on_date))
        total = len(questions)
        done = sum(1 for q in questions if q.question_type in answered)
        return {"answered": done, "total": total, "percent": percentage(done, total)}
