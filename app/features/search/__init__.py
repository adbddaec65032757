"""Entity search: products, laboratories/brands, categories and pharmacies."""

from app.features.search.routes import router
from app.features.search.schemas import (
    CategorySearchResponse,
    LaboratorySearchResponse,
    PharmacySearchResponse,
    ProductSearchResponse,
    SearchType,
)
from app.features.search.service import SearchService

__all__ = [
    "CategorySearchResponse",
    "LaboratorySearchResponse",
    "PharmacySearchResponse",
    "ProductSearchResponse",
    "SearchService",
    "SearchType",
    "router",
]
