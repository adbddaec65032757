"""Comparison module for side-by-side product, laboratory and category metrics.

This module provides endpoints comparing entities over a period against the
previous year, their monthly evolution, and a pharmacy selection against the
average pharmacy of the network.
"""

from app.features.comparison.routes import router
from app.features.comparison.schemas import (
    ComparisonEvolutionResponse,
    ComparisonRequest,
    ComparisonStatsResponse,
    GroupMetrics,
    PharmacyGroupComparisonResponse,
)
from app.features.comparison.service import ComparisonService

__all__ = [
    "ComparisonEvolutionResponse",
    "ComparisonRequest",
    "ComparisonService",
    "ComparisonStatsResponse",
    "GroupMetrics",
    "PharmacyGroupComparisonResponse",
    "router",
]
