"""
Craftify Sync - Subscription Manager

Manages the local notification permission and the server-side query
subscription that pushes a notification whenever one of the current user's
reports is updated. Subscription ids are derived from the user id, so create
and delete are idempotent.
"""

import logging
from typing import Optional, Protocol

from .errors import NotFoundError
from .models import REPORT_RECORD_TYPE
from .remote import RemoteStore

logger = logging.getLogger(__name__)

SUBSCRIPTION_PREFIX = "ReportStatusChanges_"
NOTIFICATION_TITLE = "Craftify Update"
NOTIFICATION_BODY = "Your report for %1$@ is now %2$@!"
NOTIFICATION_KEYS = ["recipeName", "status"]


class PermissionProvider(Protocol):
    """Local notification permission API."""

    def request_permission(self) -> bool: ...

    def is_authorized(self) -> bool: ...


class PushRegistrar(Protocol):
    """Registers the device for remote push delivery."""

    def register(self) -> None: ...


class GrantedPermissions:
    """Permission provider for headless use: always granted."""

    def request_permission(self) -> bool:
        return True

    def is_authorized(self) -> bool:
        return True


class NoopRegistrar:
    """Push registrar for headless use; notifications are read from the outbox instead."""

    def register(self) -> None:
        logger.debug("Push registration skipped (headless)")


def subscription_id_for(user_id: str) -> str:
    """Deterministic subscription id for a user."""
    return f"{SUBSCRIPTION_PREFIX}{user_id}"


class SubscriptionManager:
    """Permission requests, push registration and report-status subscriptions."""

    def __init__(
        self,
        remote: RemoteStore,
        permissions: Optional[PermissionProvider] = None,
        registrar: Optional[PushRegistrar] = None,
    ):
        self.remote = remote
        self.permissions = permissions or GrantedPermissions()
        self.registrar = registrar or NoopRegistrar()
        self.is_push_registered = False

    def request_permission(self) -> bool:
        """Ask the user for notification permission."""
        granted = bool(self.permissions.request_permission())
        logger.info(f"Notification permission {'granted' if granted else 'denied'}")
        return granted

    def is_authorized(self) -> bool:
        return bool(self.permissions.is_authorized())

    def register_for_push(self) -> None:
        """Register this device for remote notifications."""
        self.registrar.register()
        self.is_push_registered = True

    async def create_subscription(self, user_id: str) -> None:
        """
        Subscribe to updates of user_id's reports.

        An existing subscription with the same id counts as success.

        Raises:
            SyncError: If the remote call fails
        """
        subscription_id = subscription_id_for(user_id)

        if await self.remote.fetch_subscription(subscription_id) is not None:
            logger.info(f"Subscription already exists: {subscription_id}")
            return

        await self.remote.save_subscription(
            subscription_id,
            {
                "record_type": REPORT_RECORD_TYPE,
                "predicate": {"created_by": user_id},
                "fires_on": ["update"],
                "notification": {
                    "title": NOTIFICATION_TITLE,
                    "alert_body": NOTIFICATION_BODY,
                    "desired_keys": NOTIFICATION_KEYS,
                    "sound": "default",
                },
            },
        )
        logger.info(f"Created subscription {subscription_id}")

    async def delete_subscription(self, user_id: str) -> None:
        """Remove the subscription; a subscription that does not exist counts as removed."""
        subscription_id = subscription_id_for(user_id)
        try:
            await self.remote.delete_subscription(subscription_id)
        except NotFoundError:
            logger.debug(f"Subscription {subscription_id} did not exist")
            return
        logger.info(f"Deleted subscription {subscription_id}")
