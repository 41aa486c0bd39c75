"""
Subscription and notification routes for the Craftify backing store.

A subscription watches one record type for changes matching a predicate.
When it fires, a notification lands in the owner's outbox.
"""

from fastapi import APIRouter, Response, status

from api.core.security import CurrentUser, Store
from api.models.schemas import (
    ErrorResponse,
    NotificationResponse,
    SubscriptionBody,
    SubscriptionResponse,
)

router = APIRouter(prefix="/subscriptions", tags=["Subscriptions"])
notifications_router = APIRouter(prefix="/notifications", tags=["Subscriptions"])


# =============================================================================
# Subscriptions
# =============================================================================

@router.get(
    "",
    response_model=list[SubscriptionResponse],
    summary="List my subscriptions",
)
async def list_subscriptions(current_user: CurrentUser, store: Store) -> list[SubscriptionResponse]:
    return [SubscriptionResponse(**s.to_dict()) for s in store.list_subscriptions(current_user)]


@router.get(
    "/{subscription_id}",
    response_model=SubscriptionResponse,
    responses={404: {"description": "Subscription not found", "model": ErrorResponse}},
    summary="Get a subscription",
)
async def get_subscription(
    subscription_id: str,
    current_user: CurrentUser,
    store: Store,
) -> SubscriptionResponse:
    subscription = store.get_subscription(current_user, subscription_id)
    return SubscriptionResponse(**subscription.to_dict())


@router.put(
    "/{subscription_id}",
    response_model=SubscriptionResponse,
    responses={
        403: {"description": "Predicate targets another user", "model": ErrorResponse},
    },
    summary="Create or replace a subscription",
)
async def put_subscription(
    subscription_id: str,
    body: SubscriptionBody,
    current_user: CurrentUser,
    store: Store,
) -> SubscriptionResponse:
    """
    Create or replace a subscription owned by the current user.

    The predicate must include created_by naming the current user.
    """
    subscription = store.save_subscription(
        owner=current_user,
        subscription_id=subscription_id,
        record_type=body.record_type,
        predicate=body.predicate,
        fires_on=[event.value for event in body.fires_on],
        notification=body.notification.model_dump(),
    )
    return SubscriptionResponse(**subscription.to_dict())


@router.delete(
    "/{subscription_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Subscription not found", "model": ErrorResponse}},
    summary="Delete a subscription",
)
async def delete_subscription(
    subscription_id: str,
    current_user: CurrentUser,
    store: Store,
) -> Response:
    store.delete_subscription(current_user, subscription_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Notifications
# =============================================================================

@notifications_router.get(
    "",
    response_model=list[NotificationResponse],
    summary="My delivered notifications",
)
async def list_notifications(current_user: CurrentUser, store: Store) -> list[NotificationResponse]:
    return [NotificationResponse(**n) for n in store.notifications_for(current_user)]
