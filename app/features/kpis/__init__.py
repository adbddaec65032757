"""KPI module for dashboard, sales, stock and daily metrics.

This module provides endpoints computing pharmacy KPIs over a period, with
optional comparison, routed to materialized views when the request allows it.
"""

from app.features.kpis.routes import router
from app.features.kpis.schemas import (
    DailyMetricsResponse,
    DashboardKpiResponse,
    SalesKpiResponse,
    StockMetricsResponse,
)
from app.features.kpis.service import KpiService

__all__ = [
    "DailyMetricsResponse",
    "DashboardKpiResponse",
    "KpiService",
    "SalesKpiResponse",
    "StockMetricsResponse",
    "router",
]
