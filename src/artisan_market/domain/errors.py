"""
Domain errors.

Every failure leaving the core is one of these kinds. The API layer maps
``kind`` to an HTTP status; the stats aggregator records it per counter.
"""

import asyncio


class MarketplaceError(Exception):
    """Base class for classified failures."""

    kind = "error"

    def __init__(self, message: str = "Marketplace operation failed"):
        super().__init__(message)
        self.message = message


class NotFound(MarketplaceError):
    """Requested conversation or entity does not exist. Maps to 404."""

    kind = "not_found"

    def __init__(self, message: str = "The requested entity was not found."):
        super().__init__(message)


class AccessDenied(MarketplaceError):
    """Caller is not a party to the conversation. Maps to 403."""

    kind = "access_denied"

    def __init__(self, message: str = "Access denied"):
        super().__init__(message)


class TransientError(MarketplaceError):
    """Backend or network hiccup; idempotent reads may be retried."""

    kind = "transient"

    def __init__(self, message: str = "Backing store temporarily unavailable"):
        super().__init__(message)


class StorePermissionError(MarketplaceError):
    """Backing store rejected the call by policy. A configuration problem."""

    kind = "permission"

    def __init__(self, message: str = "Backing store rejected the request"):
        super().__init__(message)


class ValidationFailed(MarketplaceError):
    """Malformed input. Maps to 400."""

    kind = "validation"


def classify_error(exc: BaseException) -> MarketplaceError:
    """Map any exception onto the domain taxonomy."""
    if isinstance(exc, MarketplaceError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return TransientError(f"Backing store call failed: {exc!r}")
    if isinstance(exc, PermissionError):
        return StorePermissionError(str(exc) or "Backing store rejected the request")
    return TransientError(f"Unclassified backing store failure: {exc!r}")
