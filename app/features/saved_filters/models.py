"""ORM model for per-user saved filter sets.

A saved filter stores the selection the user built in the dashboard
(products, laboratories, categories, pharmacies) together with the analysis
and comparison periods. Laboratories and categories are stored by name and
resolved to product codes when the filter is loaded.
"""

from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Date, String
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.shared.models import TimestampMixin, UUIDPrimaryKeyMixin


class SavedFilter(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Saved filter set owned by one user.

    Attributes:
        id: Primary key (UUID).
        user_id: Owner; every read and write is scoped to it.
        name: Display name (trimmed, at most 255 characters).
        pharmacy_ids: Selected pharmacies.
        product_codes: Individually selected EAN codes.
        laboratory_names: Selected laboratories (``bcb_lab`` values).
        category_names: Selected universes or categories.
        category_types: ``universe`` or ``category``, parallel to ``category_names``.
        analysis_date_start: Analysis period start.
        analysis_date_end: Analysis period end.
        comparison_date_start: Optional comparison period start.
        comparison_date_end: Optional comparison period end.
    """

    __tablename__ = "data_savedfilter"

    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    pharmacy_ids: Mapped[list[str]] = mapped_column(
        ARRAY(UUID(as_uuid=False)), default=list, nullable=False
    )
    product_codes: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    laboratory_names: Mapped[list[str]] = mapped_column(
        ARRAY(String), default=list, nullable=False
    )
    category_names: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    category_types: Mapped[list[str]] = mapped_column(ARRAY(String), default=list, nullable=False)
    analysis_date_start: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    analysis_date_end: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    comparison_date_start: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
    comparison_date_end: Mapped[datetime.date | None] = mapped_column(Date, nullable=True)
