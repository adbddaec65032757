"""Network administration: pharmacy listing and editing."""

from app.features.admin.routes import router
from app.features.admin.schemas import AdminPharmacy, PharmacyUpdate
from app.features.admin.service import PharmacyAdminService

__all__ = ["AdminPharmacy", "PharmacyAdminService", "PharmacyUpdate", "router"]
