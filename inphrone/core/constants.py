"""Application-wide constants and configuration values."""

from __future__ import annotations

from enum import Enum


# Your Turn slot defaults
class SlotDefaults:
    """Fixed daily competition windows."""
    TIMES = ("09:00", "14:00", "19:00")
    WINDOW_SECONDS = 20
    POLL_INTERVAL = 5.0  # seconds
    HISTORY_LIMIT = 50


class QuestionLimits:
    """Your Turn question validation limits."""
    TEXT_MIN_LENGTH = 5
    TEXT_MAX_LENGTH = 280
    OPTION_MAX_LENGTH = 80
    MIN_OPTIONS = 2
    MAX_OPTIONS = 4


class OpinionLimits:
    """Opinion validation limits."""
    TITLE_MIN_LENGTH = 3
    TITLE_MAX_LENGTH = 120
    CONTENT_MIN_LENGTH = 10
    CONTENT_MAX_LENGTH = 2000
    PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100


# Cache constants
class CacheDefaults:
    """Default cache configuration."""
    HOT_TTL = 30  # seconds
    WARM_TTL = 300  # seconds
    COLD_TTL = 3600  # seconds
    HOT_SIZE = 1000
    WARM_SIZE = 500
    COLD_SIZE = 200


# Database constants
class DatabaseDefaults:
    """Default database configuration."""
    POOL_SIZE = 20
    BUSY_TIMEOUT = 5000  # milliseconds


# Status enums
class SlotStatus(str, Enum):
    """Your Turn slot lifecycle. Transitions only move forward."""
    SCHEDULED = "scheduled"
    OPEN = "open"
    WON = "won"
    EXPIRED = "expired"
    ARCHIVED = "archived"


class ClaimOutcome(str, Enum):
    WON = "won"
    ALREADY_TAKEN = "already_taken"
    EXPIRED = "expired"
    NOT_OPEN = "not_open"


class SubmitOutcome(str, Enum):
    CREATED = "created"
    UNAUTHORIZED = "unauthorized"
    ALREADY_ARCHIVED = "already_archived"
    ALREADY_SUBMITTED = "already_submitted"


class VoteOutcome(str, Enum):
    RECORDED = "recorded"
    ALREADY_VOTED = "already_voted"
    CLOSED = "closed"


class ResponseOutcome(str, Enum):
    RECORDED = "recorded"
    ALREADY_ANSWERED = "already_answered"


class LikeOutcome(str, Enum):
    LIKED = "liked"
    ALREADY_LIKED = "already_liked"


class CouponClaimOutcome(str, Enum):
    CLAIMED = "claimed"
    ALREADY_CLAIMED = "already_claimed"
    SOLD_OUT = "sold_out"
    EXPIRED = "expired"


class UserType(str, Enum):
    AUDIENCE = "audience"
    CREATOR = "creator"
    STUDIO = "studio"
    PRODUCTION = "production"
    OTT = "ott"
    TV = "tv"
    MUSIC = "music"
    GAMING = "gaming"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


class StreakTier(str, Enum):
    NONE = "none"
    SILVER = "silver"
    GOLD = "gold"
    DIAMOND = "diamond"


class StreakMilestones:
    """Weekly streak milestones, lowest first."""
    MILESTONES = (
        (4, StreakTier.SILVER, "Silver Badge"),
        (8, StreakTier.GOLD, "Gold Badge"),
        (12, StreakTier.DIAMOND, "Diamond Badge"),
    )


class EmailType(str, Enum):
    """Transactional email templates recognized by the dispatcher."""
    WELCOME = "welcome"
    PASSWORD_RESET = "password_reset"
    VERIFICATION = "verification"
    OPINION_LIKED = "opinion_liked"
    STREAK_ACHIEVEMENT = "streak_achievement"
    BADGE_EARNED = "badge_earned"
    INPHROSYNC_REMINDER = "inphrosync_reminder"
    WEEKLY_DIGEST = "weekly_digest"
    MILESTONE = "milestone"
    INDUSTRY_RECOGNITION = "industry_recognition"
    BROADCAST = "broadcast"


class ViolationReason(str, Enum):
    """Reasons an admin may give when removing a Your Turn question."""
    NON_ENTERTAINMENT = "non_entertainment"
    PERSONAL = "personal"
    SPAM = "spam"
    INAPPROPRIATE = "inappropriate"
    DUPLICATE = "duplicate"
    OTHER = "other"


VIOLATION_LABELS = {
    ViolationReason.NON_ENTERTAINMENT: "Non-entertainment content",
    ViolationReason.PERSONAL: "Personal/private question",
    ViolationReason.SPAM: "Spam or promotional content",
    ViolationReason.INAPPROPRIATE: "Inappropriate or offensive",
    ViolationReason.DUPLICATE: "Duplicate question",
    ViolationReason.OTHER: "Other reason",
}


class Tables:
    """Change feed channel names."""
    SLOTS = "your_turn_slots"
    ATTEMPTS = "your_turn_attempts"
    QUESTIONS = "your_turn_questions"
    VOTES = "your_turn_votes"
    INPHROSYNC_RESPONSES = "inphrosync_responses"
    OPINIONS = "opinions"
    STREAKS = "user_streaks"
    BADGES = "user_badges"
    COUPONS = "coupons"
    NOTIFICATIONS = "notifications"


# Notification settings
class NotificationDefaults:
    """Notification service defaults."""
    PUSH_PROMPT_COOLDOWN_DAYS = 7
    EMAIL_BANNER_COOLDOWN_HOURS = 1
    SESSION_FLAG_TTL_HOURS = 24
    COUPON_EXPIRY_WARNING_DAYS = 3
    LIST_LIMIT = 50
