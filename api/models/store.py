"""
In-memory backing store for the Craftify API.

Holds the public records database, each user's private key-value store,
query subscriptions and the per-user notification outbox. One store lives on
``app.state`` for the lifetime of the application.
"""

import base64
import binascii
import logging
import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

logger = logging.getLogger(__name__)

# "%1$@" style placeholders, numbered from 1 in desired_keys order
PLACEHOLDER = re.compile(r"%(\d+)\$@")

RESERVED_QUERY_PARAMS = {"limit", "cursor"}

# Oldest notifications are dropped past this many per user
OUTBOX_LIMIT = 100


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class StoreError(Exception):
    """Base exception for store operations."""
    status_code = 400


class RecordNotFound(StoreError):
    status_code = 404


class RecordExists(StoreError):
    status_code = 409


class PermissionDenied(StoreError):
    status_code = 403


class InvalidCursor(StoreError):
    status_code = 400


# =============================================================================
# Stored Types
# =============================================================================

@dataclass
class StoredRecord:
    record_type: str
    record_name: str
    created_by: str
    fields: dict[str, Any]
    created_at: datetime = field(default_factory=utcnow)
    modified_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_type": self.record_type,
            "record_name": self.record_name,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
            "fields": dict(self.fields),
        }

    def matches(self, predicate: dict[str, Any]) -> bool:
        """Equality match on created_by and on field values (compared as strings)."""
        for key, expected in predicate.items():
            if key == "created_by":
                actual = self.created_by
            elif key in self.fields:
                actual = self.fields[key]
            else:
                return False
            if str(actual) != str(expected):
                return False
        return True


@dataclass
class Subscription:
    subscription_id: str
    owner: str
    record_type: str
    predicate: dict[str, Any]
    fires_on: list[str]
    notification: dict[str, Any]
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscription_id": self.subscription_id,
            "owner": self.owner,
            "record_type": self.record_type,
            "predicate": dict(self.predicate),
            "fires_on": list(self.fires_on),
            "notification": dict(self.notification),
            "created_at": self.created_at,
        }


def format_alert(template: str, keys: list[str], fields: dict[str, Any]) -> str:
    """Fill numbered placeholders with the record's values for the desired keys."""

    def substitute(match: re.Match) -> str:
        index = int(match.group(1)) - 1
        if 0 <= index < len(keys):
            return str(fields.get(keys[index], ""))
        return match.group(0)

    return PLACEHOLDER.sub(substitute, template)


def encode_cursor(offset: int) -> str:
    return base64.urlsafe_b64encode(f"offset:{offset}".encode()).decode()


def decode_cursor(cursor: str) -> int:
    try:
        prefix, _, value = base64.urlsafe_b64decode(cursor.encode()).decode().partition(":")
        offset = int(value)
    except (binascii.Error, UnicodeDecodeError, ValueError):
        raise InvalidCursor("Invalid cursor") from None
    if prefix != "offset" or offset < 0:
        raise InvalidCursor("Invalid cursor")
    return offset


# =============================================================================
# Store
# =============================================================================

class RecordStore:
    """Thread-safe in-memory store; records keep insertion order per type."""

    def __init__(self):
        self._lock = threading.RLock()
        self._records: dict[str, dict[str, StoredRecord]] = {}
        self._private: dict[tuple[str, str], tuple[Any, datetime]] = {}
        self._subscriptions: dict[str, Subscription] = {}
        self._outbox: dict[str, list[dict[str, Any]]] = {}

    # === Records ===

    def query(
        self,
        record_type: str,
        predicate: dict[str, Any],
        limit: int,
        cursor: Optional[str] = None,
    ) -> tuple[list[StoredRecord], Optional[str]]:
        """Return one page of matching records and the cursor for the next page."""
        offset = decode_cursor(cursor) if cursor else 0
        with self._lock:
            matching = [
                r for r in self._records.get(record_type, {}).values()
                if r.matches(predicate)
            ]
        page = matching[offset:offset + limit]
        next_offset = offset + len(page)
        next_cursor = encode_cursor(next_offset) if next_offset < len(matching) else None
        return page, next_cursor

    def get(self, record_type: str, record_name: str) -> StoredRecord:
        with self._lock:
            record = self._records.get(record_type, {}).get(record_name)
        if record is None:
            raise RecordNotFound(f"{record_type}/{record_name} not found")
        return record

    def create(
        self,
        record_type: str,
        fields: dict[str, Any],
        created_by: str,
        record_name: Optional[str] = None,
    ) -> StoredRecord:
        record_name = record_name or uuid.uuid4().hex
        with self._lock:
            records = self._records.setdefault(record_type, {})
            if record_name in records:
                raise RecordExists(f"{record_type}/{record_name} already exists")
            record = StoredRecord(record_type, record_name, created_by, dict(fields))
            records[record_name] = record
            self._fire(record, "create")
        logger.debug(f"Created {record_type}/{record_name} for {created_by}")
        return record

    def update(self, record_type: str, record_name: str, fields: dict[str, Any]) -> StoredRecord:
        with self._lock:
            record = self.get(record_type, record_name)
            record.fields.update(fields)
            record.modified_at = utcnow()
            self._fire(record, "update")
        logger.info(f"Updated {record_type}/{record_name}: {sorted(fields)}")
        return record

    def delete(self, record_type: str, record_name: str, user_id: Optional[str] = None) -> None:
        """Delete a record; when user_id is given only its creator may delete it."""
        with self._lock:
            record = self.get(record_type, record_name)
            if user_id is not None and record.created_by != user_id:
                raise PermissionDenied("Only the creator can delete this record")
            del self._records[record_type][record_name]
            self._fire(record, "delete")
        logger.debug(f"Deleted {record_type}/{record_name}")

    # === Private Key-Value Store ===

    def get_value(self, user_id: str, key: str) -> tuple[Any, datetime]:
        with self._lock:
            entry = self._private.get((user_id, key))
        if entry is None:
            raise RecordNotFound(f"No value for {key}")
        return entry

    def set_value(self, user_id: str, key: str, value: Any) -> datetime:
        now = utcnow()
        with self._lock:
            self._private[(user_id, key)] = (value, now)
        return now

    def delete_value(self, user_id: str, key: str) -> None:
        with self._lock:
            if self._private.pop((user_id, key), None) is None:
                raise RecordNotFound(f"No value for {key}")

    # === Subscriptions ===

    def list_subscriptions(self, owner: str) -> list[Subscription]:
        with self._lock:
            return [s for s in self._subscriptions.values() if s.owner == owner]

    def get_subscription(self, owner: str, subscription_id: str) -> Subscription:
        with self._lock:
            subscription = self._subscriptions.get(subscription_id)
        if subscription is None or subscription.owner != owner:
            raise RecordNotFound(f"Subscription {subscription_id} not found")
        return subscription

    def save_subscription(
        self,
        owner: str,
        subscription_id: str,
        record_type: str,
        predicate: dict[str, Any],
        fires_on: list[str],
        notification: dict[str, Any],
    ) -> Subscription:
        """Create or replace a subscription owned by owner."""
        if str(predicate.get("created_by", "")) != owner:
            raise PermissionDenied("Subscriptions must be scoped to the subscriber's own records")

        with self._lock:
            existing = self._subscriptions.get(subscription_id)
            if existing is not None and existing.owner != owner:
                raise PermissionDenied(f"Subscription {subscription_id} belongs to another user")
            subscription = Subscription(
                subscription_id=subscription_id,
                owner=owner,
                record_type=record_type,
                predicate=dict(predicate),
                fires_on=list(fires_on),
                notification=dict(notification),
            )
            self._subscriptions[subscription_id] = subscription
        logger.info(f"Saved subscription {subscription_id} for {owner}")
        return subscription

    def delete_subscription(self, owner: str, subscription_id: str) -> None:
        with self._lock:
            self.get_subscription(owner, subscription_id)
            del self._subscriptions[subscription_id]
        logger.info(f"Deleted subscription {subscription_id}")

    # === Notifications ===

    def notifications_for(self, user_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._outbox.get(user_id, []))

    def _fire(self, record: StoredRecord, event: str) -> None:
        """Deliver a notification to every subscription matching the change."""
        for subscription in self._subscriptions.values():
            if (
                subscription.record_type != record.record_type
                or event not in subscription.fires_on
                or not record.matches(subscription.predicate)
            ):
                continue

            info = subscription.notification
            keys = list(info.get("desired_keys", []))
            outbox = self._outbox.setdefault(subscription.owner, [])
            outbox.append({
                "subscription_id": subscription.subscription_id,
                "record_type": record.record_type,
                "record_name": record.record_name,
                "title": info.get("title", ""),
                "body": format_alert(info.get("alert_body", ""), keys, record.fields),
                "fields": {k: record.fields.get(k) for k in keys},
                "delivered_at": utcnow(),
            })
            del outbox[:-OUTBOX_LIMIT]
            logger.debug(
                f"Notified {subscription.owner} via {subscription.subscription_id} "
                f"({event} {record.record_type}/{record.record_name})"
            )
