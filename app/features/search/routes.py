"""API routes for product, laboratory, category and pharmacy search."""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import SecurityContext, get_security_context, require_admin
from app.features.search.schemas import (
    CategorySearchRequest,
    CategorySearchResponse,
    LaboratorySearchRequest,
    LaboratorySearchResponse,
    PharmacySearchRequest,
    PharmacySearchResponse,
    ProductSearchRequest,
    ProductSearchResponse,
)
from app.features.search.service import SearchService

logger = get_logger(__name__)

router = APIRouter(prefix="/api", tags=["search"])


def _database_error(event: str, message: str, e: SQLAlchemyError) -> DatabaseError:
    logger.error(event, error=str(e), error_type=type(e).__name__, exc_info=True)
    return DatabaseError(message=message, details={"error": str(e)})


@router.post(
    "/products/search",
    response_model=ProductSearchResponse,
    summary="Search products",
    description="""
Find products by name or EAN code.

**Query Kinds** (reported as `searchType`):
- `keywords`: Accents are stripped and every word of 2+ characters must
  appear in the name. Names containing the whole query come first
- `code_start`: Digits only, matched as an EAN prefix
- `code_end`: `*` followed by digits, matched as an EAN suffix

Queries shorter than 2 characters return no products. Administrators search
the whole catalogue (one row per BCB product, 13-digit codes preferred);
pharmacy users search their own pharmacy's products.
""",
)
async def search_products(
    request: ProductSearchRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
) -> ProductSearchResponse:
    """Search products by keywords or EAN fragment.

    Args:
        request: Search query.
        ctx: Caller security context.
        db: Database session.

    Returns:
        Matching products.

    Raises:
        BadRequestError: If a pharmacy user has no pharmacy.
        DatabaseError: If the query fails.
    """
    service = SearchService()
    try:
        return await service.search_products(db=db, request=request, ctx=ctx)
    except SQLAlchemyError as e:
        raise _database_error("search.products_request_failed", "Product search failed", e) from e


@router.post(
    "/laboratories/search",
    response_model=LaboratorySearchResponse,
    summary="Search laboratories or brands",
    description="""
Find laboratories (`labOrBrandMode=laboratory`, grouped on `bcb_lab`) or
brands (`labOrBrandMode=brand`, grouped on `bcb_brand`).

**Modes**:
- `laboratory`: Match on the laboratory name. A query shorter than 2
  characters lists the first 50 laboratories alphabetically
- `product`: Match products by name or EAN (same rules as product search)
  and return their laboratories with `matching_products`

`product_codes` always lists every product of the laboratory.
""",
)
async def search_laboratories(
    request: LaboratorySearchRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
) -> LaboratorySearchResponse:
    """Search laboratories or brands."""
    service = SearchService()
    try:
        return await service.search_laboratories(db=db, request=request, ctx=ctx)
    except SQLAlchemyError as e:
        raise _database_error(
            "search.laboratories_request_failed", "Laboratory search failed", e
        ) from e


@router.post(
    "/categories/search",
    response_model=CategorySearchResponse,
    summary="Search universes and categories",
    description="""
Find universes and categories.

**Modes**:
- `category`: Match on universe and category names
- `product`: Match products by name or EAN and return their universes and
  categories with `matching_products`

Queries shorter than 3 characters return no categories.
""",
)
async def search_categories(
    request: CategorySearchRequest,
    ctx: SecurityContext = Depends(get_security_context),
    db: AsyncSession = Depends(get_db),
) -> CategorySearchResponse:
    """Search universes and categories."""
    service = SearchService()
    try:
        return await service.search_categories(db=db, request=request, ctx=ctx)
    except SQLAlchemyError as e:
        raise _database_error(
            "search.categories_request_failed", "Category search failed", e
        ) from e


@router.post(
    "/search/pharmacies",
    response_model=PharmacySearchResponse,
    summary="Search pharmacies (admin)",
    description="""
Filter pharmacies by text on name and address (2+ characters), turnover
range (`caMin`, `caMax`) and `regions`.

A request with no filter returns no pharmacies. Results are ordered by
turnover (highest first), then name. Administrators only.
""",
)
async def search_pharmacies(
    request: PharmacySearchRequest,
    _: SecurityContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> PharmacySearchResponse:
    """Search pharmacies."""
    service = SearchService()
    try:
        return await service.search_pharmacies(db=db, request=request)
    except SQLAlchemyError as e:
        raise _database_error(
            "search.pharmacies_request_failed", "Pharmacy search failed", e
        ) from e
