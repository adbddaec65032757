"""API routes for saved filters."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import DatabaseError, UnauthorizedError
from app.core.logging import get_logger
from app.core.security import SecurityContext, get_security_context
from app.features.saved_filters.schemas import (
    DeleteResponse,
    LoadedFilterResponse,
    SavedFilterCreate,
    SavedFilterEnvelope,
    SavedFilterListResponse,
    SavedFilterRename,
)
from app.features.saved_filters.service import SavedFilterService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/saved-filters", tags=["saved-filters"])


def get_owner_id(ctx: SecurityContext = Depends(get_security_context)) -> uuid.UUID:
    """Owner of the saved filters: the authenticated user."""
    try:
        return uuid.UUID(ctx.user_id)
    except ValueError as e:
        raise UnauthorizedError("Invalid user id in token") from e


def _database_error(event: str, message: str, e: SQLAlchemyError) -> DatabaseError:
    logger.error(event, error=str(e), error_type=type(e).__name__, exc_info=True)
    return DatabaseError(message=message, details={"error": str(e)})


@router.get(
    "",
    response_model=SavedFilterListResponse,
    summary="List saved filters",
    description="List the authenticated user's saved filters, most recently updated first.",
)
async def list_saved_filters(
    user_id: uuid.UUID = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> SavedFilterListResponse:
    service = SavedFilterService()
    try:
        filters = await service.list_filters(db=db, user_id=user_id)
    except SQLAlchemyError as e:
        raise _database_error("saved_filters.list_failed", "Failed to list filters", e) from e
    return SavedFilterListResponse(filters=filters)


@router.post(
    "",
    response_model=SavedFilterEnvelope,
    status_code=status.HTTP_201_CREATED,
    summary="Save a filter",
    description="""
Save the current selection under a name.

**Validation** (400 on failure):
- `name`: Required, trimmed, at most 255 characters
- `analysis_date_start` / `analysis_date_end`: Required, start <= end
- `comparison_date_start` / `comparison_date_end`: start <= end when both are given
- At least one product, laboratory, category or pharmacy
- `category_names` and `category_types` of the same length
""",
)
async def create_saved_filter(
    payload: SavedFilterCreate,
    user_id: uuid.UUID = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> SavedFilterEnvelope:
    """Create a saved filter.

    Args:
        payload: Filter definition.
        user_id: Owner.
        db: Database session.

    Returns:
        The stored filter.

    Raises:
        BadRequestError: If validation fails.
        DatabaseError: If the insert fails.
    """
    service = SavedFilterService()
    try:
        saved = await service.create_filter(db=db, user_id=user_id, payload=payload)
    except SQLAlchemyError as e:
        raise _database_error("saved_filters.create_failed", "Failed to save filter", e) from e
    return SavedFilterEnvelope(filter=saved)


@router.get(
    "/{filter_id}",
    response_model=LoadedFilterResponse,
    summary="Load a saved filter",
    description="""
Load a saved filter with its selection resolved.

**Resolved Fields**:
- `resolvedLaboratories`: Product codes of each laboratory (names matched
  with normalized whitespace)
- `resolvedCategories`: Product codes of each universe or category
- `resolvedPharmacies`: Pharmacy details
- `resolvedProductCodes`: Union of stored and resolved product codes
""",
)
async def get_saved_filter(
    filter_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> LoadedFilterResponse:
    service = SavedFilterService()
    try:
        return await service.get_filter(db=db, user_id=user_id, filter_id=filter_id)
    except SQLAlchemyError as e:
        raise _database_error("saved_filters.load_failed", "Failed to load filter", e) from e


@router.patch(
    "/{filter_id}",
    response_model=SavedFilterEnvelope,
    summary="Rename a saved filter",
)
async def rename_saved_filter(
    filter_id: uuid.UUID,
    payload: SavedFilterRename,
    user_id: uuid.UUID = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> SavedFilterEnvelope:
    service = SavedFilterService()
    try:
        saved = await service.rename_filter(
            db=db, user_id=user_id, filter_id=filter_id, name=payload.name
        )
    except SQLAlchemyError as e:
        raise _database_error("saved_filters.rename_failed", "Failed to rename filter", e) from e
    return SavedFilterEnvelope(filter=saved)


@router.delete(
    "/{filter_id}",
    response_model=DeleteResponse,
    summary="Delete a saved filter",
)
async def delete_saved_filter(
    filter_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_owner_id),
    db: AsyncSession = Depends(get_db),
) -> DeleteResponse:
    service = SavedFilterService()
    try:
        await service.delete_filter(db=db, user_id=user_id, filter_id=filter_id)
    except SQLAlchemyError as e:
        raise _database_error("saved_filters.delete_failed", "Failed to delete filter", e) from e
    return DeleteResponse()
