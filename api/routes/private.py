"""
Private key-value routes for the Craftify backing store.

Each user has an isolated store; favorites and recent searches are kept here.
The latest write to a key wins.
"""

from fastapi import APIRouter, Response, status

from api.core.security import CurrentUser, Store
from api.models.schemas import ErrorResponse, ValueBody, ValueResponse

router = APIRouter(prefix="/private", tags=["Private Store"])


@router.get(
    "/{key}",
    response_model=ValueResponse,
    responses={404: {"description": "Key never written", "model": ErrorResponse}},
    summary="Read a private value",
)
async def get_value(key: str, current_user: CurrentUser, store: Store) -> ValueResponse:
    value, modified_at = store.get_value(current_user, key)
    return ValueResponse(key=key, value=value, modified_at=modified_at)


@router.put(
    "/{key}",
    response_model=ValueResponse,
    summary="Write a private value",
)
async def put_value(
    key: str,
    body: ValueBody,
    current_user: CurrentUser,
    store: Store,
) -> ValueResponse:
    modified_at = store.set_value(current_user, key, body.value)
    return ValueResponse(key=key, value=body.value, modified_at=modified_at)


@router.delete(
    "/{key}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={404: {"description": "Key never written", "model": ErrorResponse}},
    summary="Delete a private value",
)
async def delete_value(key: str, current_user: CurrentUser, store: Store) -> Response:
    store.delete_value(current_user, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
