"""Application-wide exception classes."""

from __future__ import annotations

from typing import Optional


class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass


class ConfigurationError(ApplicationError):
    """Raised when configuration is invalid."""
    pass


class DatabaseError(ApplicationError):
    """Base exception for database-related errors."""
    pass


class ConnectionPoolError(DatabaseError):
    """Raised when database connection pool has issues."""
    pass


class RepositoryError(DatabaseError):
    """Raised when repository operation fails."""
    pass


class ServiceError(ApplicationError):
    """Base exception for service-level errors.

    Surfaced to users as a generic "try again" message.
    """
    pass


class NotificationError(ServiceError):
    """Raised when an email or push dispatch fails."""
    pass


class ValidationError(ApplicationError):
    """Raised when data validation fails."""
    pass


class NotFoundError(ApplicationError):
    """Raised when a referenced record is missing or stale."""

    def __init__(self, message: str, redirect: Optional[str] = None) -> None:
        super().__init__(message)
        self.redirect = redirect


class ConflictError(ApplicationError):
    """Raised when a write collides with one that already happened."""
    pass


class AuthenticationError(ApplicationError):
    """Raised when the caller is not signed in."""
    pass


class AuthorizationError(ApplicationError):
    """Raised when the caller lacks the required role."""
    pass


class OnboardingIncompleteError(AuthorizationError):
    """Raised when the caller has not finished onboarding."""
    pass
