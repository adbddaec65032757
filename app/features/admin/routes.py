"""API routes for pharmacy administration."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import SecurityContext, require_admin
from app.features.admin.schemas import AdminPharmacy, PharmacyUpdate, PharmacyUpdateResponse
from app.features.admin.service import PharmacyAdminService
from app.shared.schemas import PaginatedResponse, PaginationParams

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get(
    "/pharmacies",
    response_model=PaginatedResponse[AdminPharmacy],
    summary="List pharmacies",
    description="""
List every pharmacy of the network with its user count.

**Filtering Options**:
- `search`: Case-insensitive match on the pharmacy name

**Pagination**:
- Results are paginated with 1-indexed pages, sorted by name
- Default: 20 items per page, maximum: 100

**Authorization**: Admin only (403 otherwise).
""",
)
async def list_pharmacies(
    db: AsyncSession = Depends(get_db),
    _ctx: SecurityContext = Depends(require_admin),
    page: int = Query(1, ge=1, description="Page number (1-indexed)"),
    page_size: int = Query(20, ge=1, le=100, description="Pharmacies per page (max 100)"),
    search: str | None = Query(None, description="Search in pharmacy name"),
) -> PaginatedResponse[AdminPharmacy]:
    service = PharmacyAdminService()
    try:
        return await service.list_pharmacies(
            db=db,
            pagination=PaginationParams(page=page, page_size=page_size),
            search=search,
        )
    except SQLAlchemyError as e:
        logger.error(
            "admin.pharmacies_list_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to list pharmacies",
            details={"error": str(e)},
        ) from e


@router.patch(
    "/pharmacies/{pharmacy_id}",
    response_model=PharmacyUpdateResponse,
    summary="Update a pharmacy",
    description="""
Partially update a pharmacy. Only the fields present in the body are written;
`updated_at` is always refreshed.

**Updatable Fields**: `name`, `id_nat`, `address`, `area`, `ca`, `employees_count`

**Errors**:
- 400 when the body sets no field
- 404 when the pharmacy does not exist
""",
)
async def update_pharmacy(
    pharmacy_id: uuid.UUID,
    update: PharmacyUpdate,
    db: AsyncSession = Depends(get_db),
    ctx: SecurityContext = Depends(require_admin),
) -> PharmacyUpdateResponse:
    """Update a pharmacy.

    Args:
        pharmacy_id: Pharmacy to update.
        update: Fields to write.
        db: Database session.
        ctx: Calling admin, recorded in the audit log.

    Returns:
        The updated pharmacy.

    Raises:
        BadRequestError: If no field is set.
        NotFoundError: If the pharmacy does not exist.
        DatabaseError: If the update fails.
    """
    service = PharmacyAdminService()
    try:
        pharmacy = await service.update_pharmacy(
            db=db, pharmacy_id=pharmacy_id, update=update, updated_by=ctx.user_id
        )
    except SQLAlchemyError as e:
        logger.error(
            "admin.pharmacy_update_failed",
            pharmacy_id=str(pharmacy_id),
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to update pharmacy",
            details={"error": str(e)},
        ) from e
    return PharmacyUpdateResponse(pharmacy=pharmacy)
