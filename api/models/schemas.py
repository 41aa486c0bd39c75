"""
Pydantic schemas for the Craftify backing store API.

Records are schemaless at this layer: each record type is a bag of named
fields, matching the public database the mobile app syncs against.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class SubscriptionEvent(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


# =============================================================================
# Authentication Schemas
# =============================================================================

class TokenRequest(BaseModel):
    """Schema for requesting a development token."""
    user_id: str = Field(..., min_length=1, max_length=128, pattern=r"^[A-Za-z0-9_.\-]+$")


class TokenResponse(BaseModel):
    """Schema for JWT token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")


class TokenPayload(BaseModel):
    """Schema for JWT token payload."""
    sub: str
    exp: datetime
    iat: datetime


class UserResponse(BaseModel):
    """The authenticated user's identity."""
    user_id: str


# =============================================================================
# Record Schemas
# =============================================================================

class RecordCreate(BaseModel):
    """Schema for creating a record."""
    record_name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    fields: dict[str, Any] = Field(default_factory=dict)


class RecordUpdate(BaseModel):
    """Schema for a back-office field update; given fields replace stored ones."""
    fields: dict[str, Any]


class RecordResponse(BaseModel):
    """A stored record."""
    record_type: str
    record_name: str
    created_by: str
    created_at: datetime
    modified_at: datetime
    fields: dict[str, Any]


class RecordPage(BaseModel):
    """One page of a record query; cursor is None on the last page."""
    records: list[RecordResponse]
    cursor: Optional[str] = None


# =============================================================================
# Private Store Schemas
# =============================================================================

class ValueBody(BaseModel):
    """A private key-value entry."""
    value: Any


class ValueResponse(ValueBody):
    key: str
    modified_at: datetime


# =============================================================================
# Subscription Schemas
# =============================================================================

class NotificationInfo(BaseModel):
    """How a fired subscription is presented to the user."""
    title: str = ""
    alert_body: str = ""
    desired_keys: list[str] = Field(default_factory=list)
    sound: Optional[str] = None


class SubscriptionBody(BaseModel):
    """Schema for creating or replacing a query subscription."""
    record_type: str
    predicate: dict[str, Any] = Field(default_factory=dict)
    fires_on: list[SubscriptionEvent] = Field(default_factory=lambda: [SubscriptionEvent.UPDATE])
    notification: NotificationInfo = Field(default_factory=NotificationInfo)


class SubscriptionResponse(SubscriptionBody):
    subscription_id: str
    owner: str
    created_at: datetime


class NotificationResponse(BaseModel):
    """A delivered notification in a user's outbox."""
    subscription_id: str
    record_type: str
    record_name: str
    title: str
    body: str
    fields: dict[str, Any]
    delivered_at: datetime


# =============================================================================
# Common Response Schemas
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int


class HealthResponse(BaseModel):
    """Health check response."""
    status: str = "healthy"
    version: str
    database: str = "in-memory"
