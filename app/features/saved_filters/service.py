"""Service layer for saved filters.

CRUD goes through the ORM; loading a filter resolves laboratory and
category names against the catalogue with raw SQL. Names are compared
after trimming and collapsing inner whitespace, since catalogue labels are
not normalized.
"""

import uuid
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import fetch_all, fetch_one
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.features.saved_filters.models import SavedFilter
from app.features.saved_filters.schemas import (
    NAME_MAX_LENGTH,
    LoadedFilterResponse,
    ResolvedCategory,
    ResolvedLaboratory,
    ResolvedPharmacy,
    SavedFilterCreate,
    SavedFilterResponse,
)
from app.features.search.schemas import CategoryType
from app.shared.utils import as_int

logger = get_logger(__name__)

UNKNOWN_PHARMACY = "Pharmacie inconnue"

LABORATORY_CODES_SQL = r"""
SELECT
  bcb_lab AS laboratory_name,
  ARRAY_AGG(DISTINCT code_13_ref) AS product_codes,
  COUNT(DISTINCT code_13_ref) AS product_count
FROM data_globalproduct
WHERE REGEXP_REPLACE(TRIM(bcb_lab), '\s+', ' ', 'g') = ANY(
  SELECT REGEXP_REPLACE(TRIM(lab), '\s+', ' ', 'g')
  FROM UNNEST(CAST(:names AS text[])) AS lab
)
GROUP BY bcb_lab
"""

_CATEGORY_CODES_SQL = r"""
SELECT
  ARRAY_AGG(DISTINCT code_13_ref) AS product_codes,
  COUNT(DISTINCT code_13_ref) AS product_count
FROM data_globalproduct
WHERE REGEXP_REPLACE(TRIM({column}), '\s+', ' ', 'g')
  = REGEXP_REPLACE(TRIM(CAST(:name AS text)), '\s+', ' ', 'g')
"""

PHARMACIES_SQL = """
SELECT id, name, address, ca, area, employees_count, id_nat
FROM data_pharmacy
WHERE id = ANY(CAST(:ids AS uuid[]))
"""


def category_codes_sql(category_type: CategoryType) -> str:
    column = "universe" if category_type == CategoryType.UNIVERSE else "category"
    return _CATEGORY_CODES_SQL.format(column=column)


# =============================================================================
# Validation
# =============================================================================


def validate_name(name: str | None) -> str:
    """Return the trimmed name.

    Raises:
        BadRequestError: If the name is empty or longer than 255 characters.
    """
    trimmed = (name or "").strip()
    if not trimmed:
        raise BadRequestError("Filter name is required")
    if len(trimmed) > NAME_MAX_LENGTH:
        raise BadRequestError(f"Filter name is too long (max {NAME_MAX_LENGTH} characters)")
    return trimmed


def validate_create(payload: SavedFilterCreate) -> str:
    """Check a new filter before insertion and return its trimmed name.

    Raises:
        BadRequestError: On the first failed rule.
    """
    name = validate_name(payload.name)
    if payload.analysis_date_start is None or payload.analysis_date_end is None:
        raise BadRequestError("Analysis dates are required")
    if payload.analysis_date_start > payload.analysis_date_end:
        raise BadRequestError("Analysis start date must be on or before end date")
    if (
        payload.comparison_date_start is not None
        and payload.comparison_date_end is not None
        and payload.comparison_date_start > payload.comparison_date_end
    ):
        raise BadRequestError("Comparison dates are invalid")
    if not payload.has_selection:
        raise BadRequestError("Nothing selected to save")
    if len(payload.category_names) != len(payload.category_types):
        raise BadRequestError("category_names and category_types must have the same length")
    return name


# =============================================================================
# Service
# =============================================================================


class SavedFilterService:
    """Saved filter CRUD scoped to one user."""

    async def list_filters(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
    ) -> list[SavedFilterResponse]:
        """Return the user's filters, most recently updated first."""
        stmt = (
            select(SavedFilter)
            .where(SavedFilter.user_id == user_id)
            .order_by(SavedFilter.updated_at.desc())
        )
        result = await db.execute(stmt)
        filters = [SavedFilterResponse.model_validate(f) for f in result.scalars().all()]
        logger.info("saved_filters.listed", user_id=str(user_id), count=len(filters))
        return filters

    async def create_filter(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        payload: SavedFilterCreate,
    ) -> SavedFilterResponse:
        """Validate and store a new filter.

        Laboratory and category names are trimmed before storage.

        Raises:
            BadRequestError: If validation fails.
        """
        name = validate_create(payload)
        saved = SavedFilter(
            user_id=user_id,
            name=name,
            pharmacy_ids=list(payload.pharmacy_ids),
            product_codes=list(payload.product_codes),
            laboratory_names=[lab.strip() for lab in payload.laboratory_names],
            category_names=[category.strip() for category in payload.category_names],
            category_types=[category_type.value for category_type in payload.category_types],
            analysis_date_start=payload.analysis_date_start,
            analysis_date_end=payload.analysis_date_end,
            comparison_date_start=payload.comparison_date_start,
            comparison_date_end=payload.comparison_date_end,
        )
        db.add(saved)
        await db.flush()
        await db.refresh(saved)

        logger.info(
            "saved_filters.created",
            filter_id=str(saved.id),
            products=len(saved.product_codes),
            laboratories=len(saved.laboratory_names),
            categories=len(saved.category_names),
            pharmacies=len(saved.pharmacy_ids),
            has_comparison=saved.comparison_date_start is not None,
        )
        return SavedFilterResponse.model_validate(saved)

    async def _get_owned(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        filter_id: uuid.UUID,
    ) -> SavedFilter:
        stmt = select(SavedFilter).where(
            SavedFilter.id == filter_id,
            SavedFilter.user_id == user_id,
        )
        result = await db.execute(stmt)
        saved = result.scalar_one_or_none()
        if saved is None:
            raise NotFoundError(f"Saved filter not found: {filter_id}")
        return saved

    async def get_filter(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        filter_id: uuid.UUID,
    ) -> LoadedFilterResponse:
        """Load a filter and resolve its selection.

        Raises:
            NotFoundError: If the filter does not exist or belongs to another user.
        """
        saved = await self._get_owned(db, user_id, filter_id)
        return await self.resolve(db, SavedFilterResponse.model_validate(saved))

    async def resolve(
        self,
        db: AsyncSession,
        saved: SavedFilterResponse,
    ) -> LoadedFilterResponse:
        """Resolve laboratories, categories and pharmacies of a stored filter."""
        laboratories = await self.resolve_laboratories(db, saved.laboratory_names)
        categories = await self.resolve_categories(
            db, saved.category_names, saved.category_types
        )
        pharmacies = await self.resolve_pharmacies(db, saved.pharmacy_ids)

        codes = dict.fromkeys(saved.product_codes)
        for group in (*laboratories, *categories):
            codes.update(dict.fromkeys(group.product_codes))

        loaded = LoadedFilterResponse(
            filter=saved,
            resolved_product_codes=list(codes),
            resolved_laboratories=laboratories,
            resolved_categories=categories,
            resolved_pharmacies=pharmacies,
        )
        logger.info(
            "saved_filters.loaded",
            filter_id=str(saved.id),
            total_products=len(loaded.resolved_product_codes),
            laboratories=len(laboratories),
            categories=len(categories),
            pharmacies=len(pharmacies),
        )
        return loaded

    async def resolve_laboratories(
        self,
        db: AsyncSession,
        names: list[str],
    ) -> list[ResolvedLaboratory]:
        if not names:
            return []
        rows = await fetch_all(db, LABORATORY_CODES_SQL, {"names": names})
        return [
            ResolvedLaboratory(
                name=row["laboratory_name"],
                product_codes=list(row["product_codes"] or []),
                product_count=as_int(row["product_count"]),
            )
            for row in rows
        ]

    async def resolve_categories(
        self,
        db: AsyncSession,
        names: list[str],
        types: list[str],
    ) -> list[ResolvedCategory]:
        """Resolve each (name, type) pair; pairs with a blank member are skipped."""
        resolved: list[ResolvedCategory] = []
        for name, category_type in zip(names, types, strict=False):
            if not name or not category_type:
                continue
            kind = CategoryType(category_type)
            row: dict[str, Any] | None = await fetch_one(
                db, category_codes_sql(kind), {"name": name}
            )
            if row is None:
                continue
            resolved.append(
                ResolvedCategory(
                    name=name,
                    type=kind,
                    product_codes=list(row["product_codes"] or []),
                    product_count=as_int(row["product_count"]),
                )
            )
        return resolved

    async def resolve_pharmacies(
        self,
        db: AsyncSession,
        ids: list[str],
    ) -> list[ResolvedPharmacy]:
        if not ids:
            return []
        rows = await fetch_all(db, PHARMACIES_SQL, {"ids": ids})
        return [
            ResolvedPharmacy.model_validate({**row, "name": row["name"] or UNKNOWN_PHARMACY})
            for row in rows
        ]

    async def rename_filter(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        filter_id: uuid.UUID,
        name: str | None,
    ) -> SavedFilterResponse:
        """Rename a filter and refresh its ``updated_at``.

        Raises:
            BadRequestError: If the name is invalid.
            NotFoundError: If the filter does not exist or belongs to another user.
        """
        new_name = validate_name(name)
        saved = await self._get_owned(db, user_id, filter_id)
        old_name = saved.name
        saved.name = new_name
        saved.touch()
        await db.flush()
        await db.refresh(saved)

        logger.info(
            "saved_filters.renamed",
            filter_id=str(filter_id),
            old_name=old_name,
            new_name=new_name,
        )
        return SavedFilterResponse.model_validate(saved)

    async def delete_filter(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        filter_id: uuid.UUID,
    ) -> None:
        """Delete a filter.

        Raises:
            NotFoundError: If the filter does not exist or belongs to another user.
        """
        saved = await self._get_owned(db, user_id, filter_id)
        await db.delete(saved)
        await db.flush()
        logger.info("saved_filters.deleted", filter_id=str(filter_id), name=saved.name)
