"""Sales module: per-product sales table and CSV export."""

from app.features.sales.routes import router
from app.features.sales.schemas import SalesProductRow, SalesProductsResponse, SalesRowType
from app.features.sales.service import SalesService

__all__ = [
    "SalesProductRow",
    "SalesProductsResponse",
    "SalesRowType",
    "SalesService",
    "router",
]
