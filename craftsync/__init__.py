"""
Craftify Sync - Recipe Catalog Sync Engine

Keeps a local, offline-capable copy of the public recipe catalog in step with
the backing store, syncs per-user favorites and recent searches, and manages
user-submitted recipe reports and their status notifications.
"""

from .cache import LocalCache
from .catalog import CatalogClient
from .config import SyncConfig
from .connectivity import ConnectivityMonitor
from .engine import SyncEngine, error_message_for, sync_session
from .errors import (
    AuthenticationError,
    CacheError,
    ConnectivityError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    RemoteError,
    SyncError,
    ValidationError,
)
from .models import (
    ClearAllResult,
    ConsoleCommand,
    CraftingOption,
    Recipe,
    Report,
    ReportKind,
    ReportStatus,
    StepResult,
    SyncResult,
    SyncState,
)
from .notifications import SubscriptionManager
from .remote import RemoteStore
from .reports import ReportClient, SubmissionCooldown
from .user_state import UserStateClient

__version__ = "0.1.0"
__all__ = [
    # Main classes
    "SyncEngine",
    "LocalCache",
    "RemoteStore",
    "ConnectivityMonitor",
    "CatalogClient",
    "UserStateClient",
    "ReportClient",
    "SubmissionCooldown",
    "SubscriptionManager",

    # Configuration
    "SyncConfig",

    # Data models
    "Recipe",
    "CraftingOption",
    "ConsoleCommand",
    "Report",
    "ReportKind",
    "ReportStatus",
    "SyncState",
    "SyncResult",
    "StepResult",
    "ClearAllResult",

    # Exceptions
    "SyncError",
    "ConnectivityError",
    "NetworkError",
    "RemoteError",
    "NotFoundError",
    "AuthenticationError",
    "RateLimitError",
    "CacheError",
    "ValidationError",

    # Convenience functions
    "error_message_for",
    "sync_session",
]
