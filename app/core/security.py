"""Authentication and pharmacy-level authorization.

Tokens are HS256 JWTs issued by ``POST /api/auth/login``. Every data route
resolves a :class:`SecurityContext` from the bearer token and narrows the
requested pharmacies with :func:`enforce_pharmacy_scope`:

- admins see the whole network, optionally restricted to the requested ids;
- pharmacy users always see exactly their own pharmacy, whatever they ask for.
"""

import hmac
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt
from fastapi import Depends, Header

from app.core.config import get_settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.logging import get_logger, user_id_ctx

logger = get_logger(__name__)

ADMIN_ROLE = "admin"


# =============================================================================
# Passwords
# =============================================================================


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str | None) -> bool:
    """Check a password against a bcrypt hash; malformed hashes never match."""
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# =============================================================================
# Tokens
# =============================================================================


@dataclass(frozen=True)
class SecurityContext:
    """Identity and scope of the caller."""

    user_id: str
    role: str
    pharmacy_id: str | None = None
    pharmacy_name: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def create_access_token(ctx: SecurityContext, expires_minutes: int | None = None) -> str:
    """Issue a signed token for a security context.

    Args:
        ctx: Identity to encode.
        expires_minutes: Lifetime override (defaults to settings).

    Returns:
        Encoded JWT.
    """
    settings = get_settings()
    lifetime = expires_minutes if expires_minutes is not None else settings.jwt_expire_minutes
    now = datetime.now(UTC)
    claims: dict[str, Any] = {
        "sub": ctx.user_id,
        "role": ctx.role,
        "pharmacy_id": ctx.pharmacy_id,
        "pharmacy_name": ctx.pharmacy_name,
        "iat": now,
        "exp": now + timedelta(minutes=lifetime),
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> SecurityContext:
    """Decode and validate a token.

    Raises:
        UnauthorizedError: If the token is expired, tampered or incomplete.
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError as e:
        raise UnauthorizedError("Token expired") from e
    except jwt.PyJWTError as e:
        raise UnauthorizedError("Invalid token") from e

    sub = payload.get("sub")
    role = payload.get("role")
    if not sub or not role:
        raise UnauthorizedError("Invalid token payload")

    return SecurityContext(
        user_id=str(sub),
        role=str(role),
        pharmacy_id=payload.get("pharmacy_id"),
        pharmacy_name=payload.get("pharmacy_name"),
    )


# =============================================================================
# Dependencies
# =============================================================================


async def get_security_context(authorization: str | None = Header(None)) -> SecurityContext:
    """Resolve the caller from the ``Authorization: Bearer`` header.

    Async so that the ``user_id`` log binding stays in the request task.

    Raises:
        UnauthorizedError: If the header is missing or the token is invalid.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise UnauthorizedError("Missing bearer token")

    ctx = decode_access_token(authorization.split(" ", 1)[1].strip())
    user_id_ctx.set(ctx.user_id)
    return ctx


def require_admin(ctx: SecurityContext = Depends(get_security_context)) -> SecurityContext:
    """Allow only administrators through."""
    if not ctx.is_admin:
        logger.warning("security.admin_required", role=ctx.role)
        raise ForbiddenError("Admin access required")
    return ctx


def require_pharmacy(ctx: SecurityContext) -> str:
    """Return the caller's pharmacy id, failing for unassigned users."""
    if ctx.pharmacy_id is None:
        raise ForbiddenError("No pharmacy assigned to this user")
    return ctx.pharmacy_id


# =============================================================================
# Pharmacy scoping
# =============================================================================


@dataclass(frozen=True)
class PharmacyScope:
    """Pharmacies a query is allowed to read.

    Attributes:
        is_admin: Admin scope (network-wide unless ``pharmacy_ids`` is set).
        pharmacy_ids: Admin restriction; empty means every pharmacy.
        pharmacy_id: The single pharmacy of a non-admin user.
    """

    is_admin: bool
    pharmacy_ids: tuple[str, ...] = ()
    pharmacy_id: str | None = None

    @property
    def ids(self) -> list[str]:
        """Effective pharmacy ids (empty for an unrestricted admin)."""
        if self.is_admin:
            return list(self.pharmacy_ids)
        return [self.pharmacy_id] if self.pharmacy_id else []

    def sql(self, column: str, prefix: str = "AND") -> str:
        """Render the scope as a SQL predicate on ``column``.

        Args:
            column: Qualified pharmacy id column (e.g. ``ip.pharmacy_id``).
            prefix: Keyword placed before the predicate.

        Returns:
            SQL fragment, or an empty string for an unrestricted admin.
        """
        if self.is_admin:
            if not self.pharmacy_ids:
                return ""
            return f"{prefix} {column} = ANY(CAST(:pharmacy_ids AS uuid[]))"
        return f"{prefix} {column} = CAST(:pharmacy_id AS uuid)"

    def params(self) -> dict[str, Any]:
        """Bind parameters matching :meth:`sql`."""
        if self.is_admin:
            return {"pharmacy_ids": list(self.pharmacy_ids)} if self.pharmacy_ids else {}
        return {"pharmacy_id": self.pharmacy_id}


def enforce_pharmacy_scope(
    requested_ids: list[str] | None,
    ctx: SecurityContext,
) -> PharmacyScope:
    """Narrow requested pharmacies to what the caller may read.

    Args:
        requested_ids: Pharmacy ids from the request body.
        ctx: Caller security context.

    Returns:
        The effective scope.

    Raises:
        ForbiddenError: If a non-admin user has no pharmacy.
    """
    if ctx.is_admin:
        return PharmacyScope(is_admin=True, pharmacy_ids=tuple(requested_ids or ()))

    pharmacy_id = require_pharmacy(ctx)
    if requested_ids and set(requested_ids) != {pharmacy_id}:
        logger.info(
            "security.pharmacy_scope_forced",
            requested=len(requested_ids),
            pharmacy_id=pharmacy_id,
        )
    return PharmacyScope(is_admin=False, pharmacy_id=pharmacy_id)


# =============================================================================
# Cron secret
# =============================================================================


def verify_cron_secret(authorization: str | None = Header(None)) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` on maintenance routes.

    Raises:
        UnauthorizedError: If no secret is configured or it does not match.
    """
    secret = get_settings().cron_secret
    expected = f"Bearer {secret}"
    if not secret or authorization is None or not _constant_time_equals(authorization, expected):
        raise UnauthorizedError("Invalid cron credentials")


def _constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
