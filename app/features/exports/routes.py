"""API routes for regulatory exports."""

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import SecurityContext, enforce_pharmacy_scope, get_security_context
from app.features.exports.schemas import BriExportRequest
from app.features.exports.service import BriExportService
from app.shared.export import XLSX_MIME, export_filename, export_response

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["exports"])


@router.post(
    "/declaration-bri/export",
    response_class=StreamingResponse,
    summary="Export the BRI declaration workbook",
    description="""
Download units sold over `analysisDateRange` as an Excel workbook.

**Sheets**:
- `Total`: Nom Pharmacie, IDNAT, Qté Vendues (every pharmacy in scope)
- `Produit`: Code EAN 13, Nom Produit, Laboratoire, Qté Vendue (products sold)
- One sheet per EAN: Nom Pharmacie, IDNAT, Qté Vendue

Pharmacy users are always restricted to their own pharmacy.
File name: `declaration_bri_YYYYMMDD_HHMMSS.xlsx`.
""",
)
async def export_declaration_bri(
    request: BriExportRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
) -> StreamingResponse:
    """Export the BRI declaration workbook.

    Args:
        request: Period and selection.
        ctx: Caller security context.
        db: Database session.

    Returns:
        XLSX attachment.

    Raises:
        DatabaseError: If a query fails.
    """
    scope = enforce_pharmacy_scope(request.pharmacy_ids, ctx)
    service = BriExportService()
    try:
        buffer = await service.export_bri(db=db, request=request, scope=scope)
    except SQLAlchemyError as e:
        logger.error(
            "exports.bri_request_failed",
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        raise DatabaseError(
            message="Failed to export BRI declaration",
            details={"error": str(e)},
        ) from e

    return export_response(buffer, XLSX_MIME, export_filename("declaration_bri", "xlsx"))
