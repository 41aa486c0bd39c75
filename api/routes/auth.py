"""
Authentication routes for the Craftify backing store.

Identity is whatever the token's subject says; tokens are issued on request
for development and testing.
"""

from fastapi import APIRouter, status

from api.core.config import settings
from api.core.security import CurrentUser, create_access_token
from api.models.schemas import ErrorResponse, TokenRequest, TokenResponse, UserResponse

router = APIRouter(prefix="/auth", tags=["Authentication"])
users_router = APIRouter(prefix="/users", tags=["Authentication"])


@router.post(
    "/token",
    response_model=TokenResponse,
    status_code=status.HTTP_200_OK,
    responses={422: {"description": "Invalid user id", "model": ErrorResponse}},
    summary="Issue an access token",
    description="Issue a JWT access token for a user id (development only).",
)
async def issue_token(body: TokenRequest) -> TokenResponse:
    """Issue a bearer token whose subject is the given user id."""
    return TokenResponse(
        access_token=create_access_token(body.user_id),
        expires_in=settings.jwt_access_token_expire_minutes * 60,
    )


@users_router.get(
    "/me",
    response_model=UserResponse,
    responses={401: {"description": "Not authenticated", "model": ErrorResponse}},
    summary="Current user",
)
async def get_me(current_user: CurrentUser) -> UserResponse:
    """Return the identity of the authenticated user."""
    return UserResponse(user_id=current_user)
