"""
Public record routes for the Craftify backing store.

Recipes, console commands and recipe reports all live here as typed records.
Any field can be used as an equality filter when querying.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status

from api.core.config import settings
from api.core.security import CurrentUser, Store, require_admin
from api.models.schemas import ErrorResponse, RecordCreate, RecordPage, RecordResponse, RecordUpdate
from api.models.store import RESERVED_QUERY_PARAMS

router = APIRouter(prefix="/records", tags=["Records"])


# =============================================================================
# Query Records
# =============================================================================

@router.get(
    "/{record_type}",
    response_model=RecordPage,
    responses={
        200: {"description": "One page of matching records"},
        400: {"description": "Invalid cursor", "model": ErrorResponse},
        401: {"description": "Not authenticated", "model": ErrorResponse},
    },
    summary="Query records",
    description=(
        "Get one page of records of a type. Extra query parameters are equality "
        "filters on record fields; created_by filters on the creating user."
    ),
)
async def query_records(
    record_type: str,
    request: Request,
    current_user: CurrentUser,
    store: Store,
    limit: Optional[int] = Query(None, ge=1, le=settings.max_page_size, description="Page size"),
    cursor: Optional[str] = Query(None, description="Cursor from the previous page"),
) -> RecordPage:
    """
    Query records with cursor pagination.

    The returned cursor is null on the last page.
    """
    predicate = {
        key: value
        for key, value in request.query_params.items()
        if key not in RESERVED_QUERY_PARAMS
    }
    records, next_cursor = store.query(
        record_type,
        predicate,
        limit=limit or settings.default_page_size,
        cursor=cursor,
    )
    return RecordPage(
        records=[RecordResponse(**r.to_dict()) for r in records],
        cursor=next_cursor,
    )


# =============================================================================
# Create / Update / Delete
# =============================================================================

@router.post(
    "/{record_type}",
    response_model=RecordResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        201: {"description": "Record created"},
        401: {"description": "Not authenticated", "model": ErrorResponse},
        409: {"description": "Record name already taken", "model": ErrorResponse},
    },
    summary="Create a record",
)
async def create_record(
    record_type: str,
    body: RecordCreate,
    current_user: CurrentUser,
    store: Store,
) -> RecordResponse:
    """Create a record owned by the current user."""
    record = store.create(record_type, body.fields, current_user, body.record_name)
    return RecordResponse(**record.to_dict())


@router.patch(
    "/{record_type}/{record_name}",
    response_model=RecordResponse,
    dependencies=[Depends(require_admin)],
    responses={
        403: {"description": "Admin token required", "model": ErrorResponse},
        404: {"description": "Record not found", "model": ErrorResponse},
    },
    summary="Update record fields (back office)",
    description="Replace the given fields. Fires matching update subscriptions.",
)
async def update_record(
    record_type: str,
    record_name: str,
    body: RecordUpdate,
    store: Store,
) -> RecordResponse:
    """Back-office update, e.g. changing a report's status."""
    record = store.update(record_type, record_name, body.fields)
    return RecordResponse(**record.to_dict())


@router.delete(
    "/{record_type}/{record_name}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        403: {"description": "Not the record's creator", "model": ErrorResponse},
        404: {"description": "Record not found", "model": ErrorResponse},
    },
    summary="Delete a record",
)
async def delete_record(
    record_type: str,
    record_name: str,
    current_user: CurrentUser,
    store: Store,
) -> Response:
    """Delete a record created by the current user."""
    store.delete(record_type, record_name, user_id=current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
