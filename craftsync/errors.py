"""
Craftify Sync - Exceptions

Every failure the engine can produce maps onto one of these classes so the
facade can decide whether to absorb it (automatic refresh) or surface it
(user-initiated action).
"""

from typing import Optional


class SyncError(Exception):
    """Base exception for sync operations."""
    pass


class ConnectivityError(SyncError):
    """No network; remote calls are short-circuited."""
    pass


class NetworkError(SyncError):
    """Network-related error (transport failure or timeout)."""
    pass


class RemoteError(SyncError):
    """The remote store answered with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundError(RemoteError):
    """The remote record or subscription does not exist."""

    def __init__(self, message: str):
        super().__init__(message, status_code=404)


class AuthenticationError(RemoteError):
    """The remote store could not identify the user."""
    pass


class RateLimitError(SyncError):
    """Submission attempted inside the cooldown window."""

    def __init__(self, message: str, remaining: int):
        super().__init__(message)
        self.remaining = remaining


class CacheError(SyncError):
    """Local cache read or write failed."""
    pass


class ValidationError(SyncError):
    """Required fields are missing; nothing was sent."""

    def __init__(self, message: str, fields: Optional[list[str]] = None):
        super().__init__(message)
        self.fields = fields or []
