"""Shared utilities used across 3+ features."""

from app.shared.models import TimestampMixin, UUIDPrimaryKeyMixin
from app.shared.schemas import DateRange, PaginatedResponse, PaginationParams, TimedResponse

__all__ = [
    "DateRange",
    "PaginatedResponse",
    "PaginationParams",
    "TimedResponse",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
]
