"""Saved filters: per-user named selections with periods."""

from app.features.saved_filters.models import SavedFilter
from app.features.saved_filters.routes import router
from app.features.saved_filters.schemas import LoadedFilterResponse, SavedFilterResponse
from app.features.saved_filters.service import SavedFilterService

__all__ = [
    "LoadedFilterResponse",
    "SavedFilter",
    "SavedFilterResponse",
    "SavedFilterService",
    "router",
]
