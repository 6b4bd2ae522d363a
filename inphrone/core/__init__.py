"""Core application components."""

from inphrone.core.logger import setup_logger, get_logger
from inphrone.core.constants import (
    SlotDefaults,
    QuestionLimits,
    OpinionLimits,
    CacheDefaults,
    DatabaseDefaults,
    SlotStatus,
    ClaimOutcome,
    SubmitOutcome,
    VoteOutcome,
    ResponseOutcome,
    LikeOutcome,
    CouponClaimOutcome,
    UserType,
    UserRole,
    StreakTier,
    StreakMilestones,
    EmailType,
    ViolationReason,
    VIOLATION_LABELS,
    Tables,
    NotificationDefaults,
)
from inphrone.core.exceptions import (
    ApplicationError,
    ConfigurationError,
    DatabaseError,
    RepositoryError,
    ServiceError,
    NotificationError,
    ValidationError,
    NotFoundError,
    ConflictError,
    AuthenticationError,
    AuthorizationError,
    OnboardingIncompleteError,
)

__all__ = [
    # Logging
    'setup_logger',
    'get_logger',
    # Constants
    'SlotDefaults',
    'QuestionLimits',
    'OpinionLimits',
    'CacheDefaults',
    'DatabaseDefaults',
    'SlotStatus',
    'ClaimOutcome',
    'SubmitOutcome',
    'VoteOutcome',
    'ResponseOutcome',
    'LikeOutcome',
    'CouponClaimOutcome',
    'UserType',
    'UserRole',
    'StreakTier',
    'StreakMilestones',
    'EmailType',
    'ViolationReason',
    'VIOLATION_LABELS',
    'Tables',
    'NotificationDefaults',
    # Exceptions
    'ApplicationError',
    'ConfigurationError',
    'DatabaseError',
    'RepositoryError',
    'ServiceError',
    'NotificationError',
    'ValidationError',
    'NotFoundError',
    'ConflictError',
    'AuthenticationError',
    'AuthorizationError',
    'OnboardingIncompleteError',
]
