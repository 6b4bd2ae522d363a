"""Data access layer models implemented with handcrafted queries."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, List, Mapping, Optional

from inphrone.core.constants import SlotStatus


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _as_bool(value: Any) -> bool:
    return bool(value) if value is not None else False


@dataclass(slots=True)
class Profile:
    id: str
    email: str
    full_name: Optional[str]
    user_type: str
    role: str
    onboarding_completed: bool
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.full_name or "Anonymous"

    @property
    def wants_email(self) -> bool:
        return self.settings.get("email_notifications") is not False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Profile":
        return cls(
            id=row["id"],
            email=row["email"],
            full_name=row["full_name"],
            user_type=row["user_type"],
            role=row["role"],
            onboarding_completed=_as_bool(row["onboarding_completed"]),
            settings=json.loads(row["settings"] or "{}"),
        )


@dataclass(slots=True)
class Slot:
    id: int
    slot_date: date
    slot_time: str
    status: SlotStatus
    attempt_count: int
    winner_id: Optional[str]
    opened_at: Optional[datetime]
    resolved_at: Optional[datetime]
    archived_at: Optional[datetime]

    def window_start(self, tz: tzinfo) -> datetime:
        hours, minutes = (int(part) for part in self.slot_time.split(":"))
        return datetime.combine(self.slot_date, time(hours, minutes), tzinfo=tz)

    def window_end(self, tz: tzinfo, window_seconds: int) -> datetime:
        return self.window_start(tz) + timedelta(seconds=window_seconds)

    def observable_state(self) -> tuple:
        """The fields whose change observers are told about."""
        return (self.status, self.attempt_count, self.winner_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slot_date": self.slot_date.isoformat(),
            "slot_time": self.slot_time,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "winner_id": self.winner_id,
            "opened_at": format_timestamp(self.opened_at),
            "resolved_at": format_timestamp(self.resolved_at),
            "archived_at": format_timestamp(self.archived_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Slot":
        return cls(
            id=row["id"],
            slot_date=date.fromisoformat(row["slot_date"]),
            slot_time=row["slot_time"],
            status=SlotStatus(row["status"]),
            attempt_count=row["attempt_count"],
            winner_id=row["winner_id"],
            opened_at=parse_timestamp(row["opened_at"]),
            resolved_at=parse_timestamp(row["resolved_at"]),
            archived_at=parse_timestamp(row["archived_at"]),
        )


@dataclass(slots=True)
class Attempt:
    id: int
    slot_id: int
    user_id: str
    attempted_at: datetime
    is_winner: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slot_id": self.slot_id,
            "user_id": self.user_id,
            "attempted_at": self.attempted_at.isoformat(),
            "is_winner": self.is_winner,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Attempt":
        return cls(
            id=row["id"],
            slot_id=row["slot_id"],
            user_id=row["user_id"],
            attempted_at=datetime.fromisoformat(row["attempted_at"]),
            is_winner=_as_bool(row["is_winner"]),
        )


@dataclass(slots=True)
class QuestionOption:
    option_id: str
    label: str
    votes: int = 0


@dataclass(slots=True)
class Question:
    id: int
    slot_id: int
    user_id: str
    question_text: str
    options: List[QuestionOption]
    total_votes: int
    is_deleted: bool
    deletion_reason: Optional[str]
    created_at: datetime
    winner_name: Optional[str] = None

    def option(self, option_id: str) -> Optional[QuestionOption]:
        return next((opt for opt in self.options if opt.option_id == option_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slot_id": self.slot_id,
            "user_id": self.user_id,
            "question_text": self.question_text,
            "options": [
                {"id": opt.option_id, "label": opt.label, "votes": opt.votes}
                for opt in self.options
            ],
            "total_votes": self.total_votes,
            "is_deleted": self.is_deleted,
            "deletion_reason": self.deletion_reason,
            "created_at": self.created_at.isoformat(),
            "winner_name": self.winner_name,
        }


@dataclass(slots=True)
class HistoryEntry:
    id: int
    slot_id: int
    slot_date: str
    slot_time: str
    final_status: str
    winner_id: Optional[str]
    winner_name: Optional[str]
    question_text: Optional[str]
    options: List[Dict[str, Any]]
    total_votes: int
    attempt_count: int
    archived_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "HistoryEntry":
        return cls(
            id=row["id"],
            slot_id=row["slot_id"],
            slot_date=row["slot_date"],
            slot_time=row["slot_time"],
            final_status=row["final_status"],
            winner_id=row["winner_id"],
            winner_name=row["winner_name"],
            question_text=row["question_text"],
            options=json.loads(row["options"] or "[]"),
            total_votes=row["total_votes"],
            attempt_count=row["attempt_count"],
            archived_at=row["archived_at"],
        )


@dataclass(slots=True)
class PollQuestion:
    id: int
    question_type: str
    question_text: str
    options: List[Dict[str, str]]
    display_order: int

    def option_ids(self) -> List[str]:
        return [opt["id"] for opt in self.options]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "PollQuestion":
        return cls(
            id=row["id"],
            question_type=row["question_type"],
            question_text=row["question_text"],
            options=json.loads(row["options"]),
            display_order=row["display_order"],
        )


@dataclass(slots=True)
class StreakRecord:
    user_id: str
    current_streak_weeks: int = 0
    longest_streak_weeks: int = 0
    streak_tier: str = "none"
    total_weekly_contributions: int = 0
    last_activity_date: Optional[date] = None
    inphrosync_streak_days: int = 0
    inphrosync_longest_streak: int = 0
    inphrosync_last_participation: Optional[date] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ("last_activity_date", "inphrosync_last_participation"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "StreakRecord":
        def _date(value: Optional[str]) -> Optional[date]:
            return date.fromisoformat(value) if value else None

        return cls(
            user_id=row["user_id"],
            current_streak_weeks=row["current_streak_weeks"],
            longest_streak_weeks=row["longest_streak_weeks"],
            streak_tier=row["streak_tier"],
            total_weekly_contributions=row["total_weekly_contributions"],
            last_activity_date=_date(row["last_activity_date"]),
            inphrosync_streak_days=row["inphrosync_streak_days"],
            inphrosync_longest_streak=row["inphrosync_longest_streak"],
            inphrosync_last_participation=_date(row["inphrosync_last_participation"]),
        )


@dataclass(slots=True)
class Badge:
    id: int
    user_id: str
    badge_type: str
    badge_name: str
    badge_description: Optional[str]
    metadata: Dict[str, Any]
    earned_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Badge":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            badge_type=row["badge_type"],
            badge_name=row["badge_name"],
            badge_description=row["badge_description"],
            metadata=json.loads(row["metadata"] or "{}"),
            earned_at=row["earned_at"],
        )


@dataclass(slots=True)
class Opinion:
    id: int
    user_id: str
    category_id: int
    category_name: Optional[str]
    title: str
    content: str
    likes_count: int
    is_deleted: bool
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Opinion":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            category_id=row["category_id"],
            category_name=row["category_name"],
            title=row["title"],
            content=row["content"],
            likes_count=row["likes_count"],
            is_deleted=_as_bool(row["is_deleted"]),
            created_at=row["created_at"],
        )


@dataclass(slots=True)
class Coupon:
    id: int
    title: str
    brand: str
    description: Optional[str]
    total_quantity: int
    claimed_count: int
    expires_at: Optional[datetime]
    is_active: bool

    @property
    def remaining(self) -> int:
        return max(self.total_quantity - self.claimed_count, 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "brand": self.brand,
            "description": self.description,
            "total_quantity": self.total_quantity,
            "remaining": self.remaining,
            "expires_at": format_timestamp(self.expires_at),
            "is_active": self.is_active,
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Coupon":
        return cls(
            id=row["id"],
            title=row["title"],
            brand=row["brand"],
            description=row["description"],
            total_quantity=row["total_quantity"],
            claimed_count=row["claimed_count"],
            expires_at=parse_timestamp(row["expires_at"]),
            is_active=_as_bool(row["is_active"]),
        )


@dataclass(slots=True)
class ClaimedCoupon:
    coupon_id: int
    title: str
    brand: str
    code: str
    claimed_at: str
    expires_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coupon_id": self.coupon_id,
            "title": self.title,
            "brand": self.brand,
            "code": self.code,
            "claimed_at": self.claimed_at,
            "expires_at": format_timestamp(self.expires_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ClaimedCoupon":
        return cls(
            coupon_id=row["coupon_id"],
            title=row["title"],
            brand=row["brand"],
            code=row["code"],
            claimed_at=row["claimed_at"],
            expires_at=parse_timestamp(row["expires_at"]),
        )


@dataclass(slots=True)
class Notification:
    id: int
    user_id: str
    title: str
    message: str
    type: str
    action_url: Optional[str]
    is_read: bool
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Notification":
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"],
            message=row["message"],
            type=row["type"],
            action_url=row["action_url"],
            is_read=_as_bool(row["is_read"]),
            created_at=row["created_at"],
        )
