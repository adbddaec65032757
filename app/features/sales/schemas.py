"""Pydantic schemas for the per-product sales table."""

from enum import Enum

from pydantic import BaseModel, Field

from app.shared.schemas import DateRange, TimedResponse


class SalesRowType(str, Enum):
    """Kind of row in the sales table."""

    DETAIL = "DETAIL"
    SYNTHESE = "SYNTHESE"


SYNTHESE_PERIOD = "TOTAL"


class SalesProductRow(BaseModel):
    """One product over one period (DETAIL) or over the whole range (SYNTHESE).

    Market shares are relative to the current selection, not to the whole
    pharmacy.
    """

    nom: str = Field(..., description="Product name.")
    code_ean: str = Field(..., description="EAN-13 code.")
    bcb_lab: str | None = Field(None, description="Laboratory (BCB reference).")
    periode: str = Field(
        ..., description="YYYY-MM-DD, YYYY-MM for monthly grouping, or TOTAL for SYNTHESE rows."
    )
    periode_libelle: str = Field(..., description="Human readable period label.")
    type_ligne: SalesRowType
    quantity_bought: float = 0.0
    quantite_vendue: float = 0.0
    prix_achat_moyen: float = 0.0
    prix_vente_moyen: float = 0.0
    taux_marge_moyen: float = 0.0
    part_marche_quantite_pct: float = 0.0
    part_marche_marge_pct: float = 0.0
    montant_ventes_ttc: float = 0.0
    montant_marge_total: float = 0.0
    quantite_vendue_comparison: float | None = Field(
        None, description="Units sold over the comparison period (SYNTHESE rows only)."
    )
    quantity_bought_comparison: float | None = Field(
        None, description="Units received over the comparison period (SYNTHESE rows only)."
    )


class SalesProductsResponse(TimedResponse):
    """Sales table ordered by product name, SYNTHESE row first."""

    sales_data: list[SalesProductRow] = Field(default_factory=list, alias="salesData")
    count: int = 0
    date_range: DateRange = Field(..., alias="dateRange")
