"""
Custom exceptions for the application.
"""

from typing import Any, Optional


class MarketplaceError(Exception):
    """Base exception for the marketplace backend."""

    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class NotFoundError(MarketplaceError):
    """Resource not found."""

    pass


class DuplicateError(MarketplaceError):
    """Duplicate resource detected."""

    pass


class ValidationError(MarketplaceError):
    """Validation error."""

    pass


class AuthorizationError(MarketplaceError):
    """Authorization failed."""

    pass


class ForbiddenError(AuthorizationError):
    """Forbidden operation (authorization denied)."""

    pass


class InfrastructureError(MarketplaceError):
    """Infrastructure-related error (DB, storage, transport, etc.)."""

    pass


class BusinessLogicError(MarketplaceError):
    """Business logic constraint violation."""

    pass


# ===========================================
# Chat synchronization
# ===========================================


class ChatError(MarketplaceError):
    """Base class for chat synchronization errors."""

    pass


class SessionResolutionFailed(ChatError):
    """Chat session could not be resolved. Fatal to controller start."""

    pass


class ProfileResolutionFailed(ChatError):
    """Counterpart profile unavailable. Chat keeps working without it."""

    pass


class SubscriptionError(ChatError):
    """Live message subscription could not be opened or dropped."""

    pass


class SendFailed(ChatError):
    """Appending a message to the transport failed."""

    pass


class NotActiveError(ChatError):
    """Operation requires a live controller."""

    pass
