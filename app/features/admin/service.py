"""Pharmacy administration queries."""

import uuid
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import fetch_all, fetch_one
from app.core.exceptions import BadRequestError, NotFoundError
from app.core.logging import get_logger
from app.features.admin.schemas import AdminPharmacy, PharmacyUpdate
from app.shared.schemas import PaginatedResponse, PaginationParams
from app.shared.utils import as_int, as_optional_float, paginate_response

logger = get_logger(__name__)

# Column names are fixed here; values always go through bind parameters.
UPDATABLE_COLUMNS = ("name", "id_nat", "address", "area", "ca", "employees_count")

_SEARCH_CONDITION = "WHERE p.name ILIKE :search"

_COUNT_SQL = """
SELECT COUNT(*) AS total
FROM data_pharmacy p
{where}
"""

_LIST_SQL = """
SELECT
  p.id,
  p.id_nat,
  p.name,
  p.address,
  p.area,
  p.ca,
  p.employees_count,
  p.ca_rank,
  p.created_at,
  p.updated_at,
  (SELECT COUNT(DISTINCT u.id) FROM data_user u WHERE u.pharmacy_id = p.id) AS user_count
FROM data_pharmacy p
{where}
ORDER BY p.name ASC
LIMIT :limit OFFSET :offset
"""

_RETURNING = """
RETURNING id, id_nat, name, address, area, ca, employees_count, ca_rank,
  created_at, updated_at
"""


def update_sql(fields: dict[str, Any]) -> str:
    """Build the UPDATE for the given columns; ``updated_at`` is always set."""
    assignments = [f"{column} = :{column}" for column in UPDATABLE_COLUMNS if column in fields]
    assignments.append("updated_at = NOW()")
    return (
        f"UPDATE data_pharmacy SET {', '.join(assignments)} "
        f"WHERE id = CAST(:id AS uuid){_RETURNING}"
    )


def _to_pharmacy(row: dict[str, Any]) -> AdminPharmacy:
    return AdminPharmacy.model_validate(
        {
            **row,
            "ca": as_optional_float(row.get("ca")),
            "user_count": as_int(row.get("user_count")),
        }
    )


class PharmacyAdminService:
    """Admin-only pharmacy listing and editing."""

    async def list_pharmacies(
        self,
        db: AsyncSession,
        pagination: PaginationParams,
        search: str | None = None,
    ) -> PaginatedResponse[AdminPharmacy]:
        """List pharmacies by name, optionally filtered by a name fragment."""
        params: dict[str, Any] = {"limit": pagination.limit, "offset": pagination.offset}
        where = ""
        term = (search or "").strip()
        if term:
            where = _SEARCH_CONDITION
            params["search"] = f"%{term}%"

        count_row = await fetch_one(db, _COUNT_SQL.format(where=where), params)
        total = as_int(count_row["total"]) if count_row else 0
        rows = await fetch_all(db, _LIST_SQL.format(where=where), params)

        logger.info(
            "admin.pharmacies_listed",
            total=total,
            page=pagination.page,
            returned=len(rows),
            search=term or None,
        )
        return paginate_response([_to_pharmacy(row) for row in rows], total, pagination)

    async def update_pharmacy(
        self,
        db: AsyncSession,
        pharmacy_id: uuid.UUID,
        update: PharmacyUpdate,
        updated_by: str,
    ) -> AdminPharmacy:
        """Apply a partial update.

        Raises:
            BadRequestError: If the body sets no field.
            NotFoundError: If the pharmacy does not exist.
        """
        fields = update.model_dump(exclude_unset=True)
        if not fields:
            raise BadRequestError("No fields to update")

        row = await fetch_one(db, update_sql(fields), {**fields, "id": str(pharmacy_id)})
        if row is None:
            raise NotFoundError(f"Pharmacy not found: {pharmacy_id}")

        logger.info(
            "admin.pharmacy_updated",
            pharmacy_id=str(pharmacy_id),
            fields=sorted(fields),
            updated_by=updated_by,
        )
        return _to_pharmacy(row)
