"""Authentication: email/password login issuing bearer tokens."""

from app.features.auth.routes import router
from app.features.auth.schemas import CurrentUser, LoginRequest, TokenResponse
from app.features.auth.service import AuthService

__all__ = ["AuthService", "CurrentUser", "LoginRequest", "TokenResponse", "router"]
