"""Regulatory exports (BRI declaration workbook)."""

from app.features.exports.routes import router
from app.features.exports.schemas import BriExportRequest
from app.features.exports.service import BriExportService

__all__ = ["BriExportRequest", "BriExportService", "router"]
