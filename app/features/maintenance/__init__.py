"""Maintenance jobs: scheduled refresh of the reporting materialized views."""

from app.features.maintenance.routes import router
from app.features.maintenance.schemas import RefreshResponse
from app.features.maintenance.service import REFRESH_LEVELS, MaterializedViewRefresher

__all__ = [
    "REFRESH_LEVELS",
    "MaterializedViewRefresher",
    "RefreshResponse",
    "router",
]
