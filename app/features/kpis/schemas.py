"""Pydantic schemas for KPI endpoints.

Metric names follow the French vocabulary used across the dashboard:
``ca_ttc`` (turnover incl. tax), ``montant_*_ht`` (amounts excl. tax),
``quantite_*`` (units), ``marge`` (margin).
"""

from datetime import date

from pydantic import BaseModel, ConfigDict, Field

from app.shared.schemas import DateRange, TimedResponse

# =============================================================================
# Dashboard KPIs (POST /api/kpis)
# =============================================================================


class DashboardKpiComparison(BaseModel):
    """Subset of dashboard metrics over the comparison period."""

    ca_ttc: float = 0.0
    montant_achat_ht: float = 0.0
    montant_marge: float = 0.0
    quantite_vendue: float = 0.0
    quantite_achetee: float = 0.0


class DashboardKpiMetrics(BaseModel):
    """Dashboard metrics over one period."""

    ca_ttc: float = Field(0.0, description="Sales turnover incl. tax.")
    montant_achat_ht: float = Field(
        0.0, description="Ordered quantities valued at the weighted average cost."
    )
    montant_marge: float = Field(
        0.0, description="Sum of quantity x (price excl. tax - weighted average cost)."
    )
    pourcentage_marge: float = Field(0.0, description="montant_marge / ca_ttc x 100.")
    valeur_stock_ht: float = Field(0.0, description="Latest stock valued at cost.")
    quantite_stock: float = Field(0.0, description="Latest stock in units.")
    quantite_vendue: float = 0.0
    quantite_achetee: float = 0.0
    jours_de_stock: float | None = Field(
        None,
        description=(
            "round(stock / (sold / 365)); null when nothing was sold or nothing is in stock."
        ),
    )
    nb_references_produits: int = 0
    nb_pharmacies: int = 0


class DashboardKpiResponse(DashboardKpiMetrics, TimedResponse):
    """Dashboard KPIs with optional comparison."""

    comparison: DashboardKpiComparison | None = None


# =============================================================================
# Sales KPIs (POST /api/ventes/kpis)
# =============================================================================


class SalesKpiMetrics(BaseModel):
    """Sales metrics over one period."""

    quantite_vendue: float = 0.0
    ca_ttc: float = 0.0
    part_marche_ca_pct: float = Field(
        0.0, description="Selection turnover / turnover of the scoped pharmacies x 100."
    )
    part_marche_marge_pct: float = Field(
        0.0, description="Selection margin / margin of the scoped pharmacies x 100."
    )
    nb_references_selection: int = 0
    nb_references_80pct_ca: int = Field(
        0, description="Number of best-selling references making up 80% of the turnover."
    )
    montant_marge: float = 0.0
    taux_marge_pct: float = 0.0


class SalesKpiResponse(SalesKpiMetrics, TimedResponse):
    """Sales KPIs with routing provenance."""

    used_materialized_view: bool = Field(False, alias="usedMaterializedView")
    comparison: SalesKpiMetrics | None = None


# =============================================================================
# Stock metrics (POST /api/stock-metrics)
# =============================================================================


class StockMetricsComparison(BaseModel):
    """Stock metrics over the comparison period."""

    quantite_stock_actuel_total: float = 0.0
    montant_stock_actuel_total: float = 0.0
    stock_moyen_12_mois: float = 0.0
    jours_de_stock_actuels: float | None = None
    quantite_commandee: float = 0.0
    quantite_receptionnee: float = 0.0
    montant_commande_ht: float = 0.0
    montant_receptionne_ht: float = 0.0


class StockMetrics(StockMetricsComparison):
    """Stock, order and reception metrics."""

    nb_references_produits: int = 0
    nb_pharmacies: int = 0


class StockMetricsResponse(StockMetrics, TimedResponse):
    """Stock metrics with optional comparison."""

    comparison: StockMetricsComparison | None = None


# =============================================================================
# Daily metrics (POST /api/daily-metrics)
# =============================================================================


class DailyMetricsRequest(BaseModel):
    """Daily series request. ``pharmacyId`` is honoured for admins only."""

    model_config = ConfigDict(populate_by_name=True)

    date_range: DateRange = Field(..., alias="dateRange")
    product_codes: list[str] = Field(default_factory=list, alias="productCodes")
    pharmacy_id: str | None = Field(None, alias="pharmacyId")


class DailyMetricsEntry(BaseModel):
    """One calendar day with running totals since the start of the range."""

    date: date
    quantite_vendue_jour: float = 0.0
    ca_ttc_jour: float = 0.0
    marge_jour: float = 0.0
    quantite_achat_jour: float = 0.0
    montant_achat_jour: float = 0.0
    stock_jour: float = 0.0
    cumul_quantite_vendue: float = 0.0
    cumul_quantite_achetee: float = 0.0
    cumul_ca_ttc: float = 0.0
    cumul_montant_achat: float = 0.0
    cumul_marge: float = 0.0


class DailyMetricsResponse(TimedResponse):
    """Daily series, one entry per day of the range."""

    data: list[DailyMetricsEntry] = Field(default_factory=list)
    used_materialized_view: bool = Field(False, alias="usedMaterializedView")


# =============================================================================
# Filtered sales / purchase aggregates (POST /api/kpis/ventes, /api/kpis/achats)
# =============================================================================


class VentesAggregate(BaseModel):
    quantite_vendue: float = 0.0
    montant_ht: float = 0.0


class VentesKpiResponse(VentesAggregate, TimedResponse):
    """Sales aggregate under the full dashboard filter."""

    evolution_percent: float | None = Field(
        None, description="montant_ht change vs the comparison period, in percent."
    )
    comparison: VentesAggregate | None = None


class AchatsAggregate(BaseModel):
    quantite_achetee: float = 0.0
    montant_ht: float = 0.0


class AchatsKpiResponse(AchatsAggregate, TimedResponse):
    """Purchase (received quantities) aggregate under the full dashboard filter."""

    evolution_percent: float | None = Field(
        None, description="montant_ht change vs the comparison period, in percent."
    )
    comparison: AchatsAggregate | None = None
