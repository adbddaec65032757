"""Credential check against ``data_user``."""

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import fetch_one
from app.core.exceptions import UnauthorizedError
from app.core.logging import get_logger
from app.core.security import SecurityContext, create_access_token, verify_password
from app.features.auth.schemas import LoginRequest, SessionUser, TokenResponse

logger = get_logger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"

USER_BY_EMAIL_SQL = """
SELECT
  u.id,
  u.email,
  u.name,
  u.role,
  u.pharmacy_id,
  u.password_hash,
  p.name AS pharmacy_name
FROM data_user u
LEFT JOIN data_pharmacy p ON p.id = u.pharmacy_id
WHERE LOWER(u.email) = LOWER(:email)
LIMIT 1
"""


class AuthService:
    """Issues access tokens for valid credentials."""

    async def login(self, db: AsyncSession, credentials: LoginRequest) -> TokenResponse:
        """Check credentials and issue a token.

        Unknown emails and wrong passwords fail with the same error.

        Raises:
            UnauthorizedError: If the credentials do not match a user.
        """
        email = credentials.email.strip()
        row = await fetch_one(db, USER_BY_EMAIL_SQL, {"email": email})
        if row is None or not verify_password(credentials.password, row["password_hash"]):
            logger.warning("auth.login_failed", known_user=row is not None)
            raise UnauthorizedError(INVALID_CREDENTIALS)

        pharmacy_id = str(row["pharmacy_id"]) if row["pharmacy_id"] is not None else None
        ctx = SecurityContext(
            user_id=str(row["id"]),
            role=row["role"],
            pharmacy_id=pharmacy_id,
            pharmacy_name=row["pharmacy_name"],
        )
        logger.info("auth.login_succeeded", user_id=ctx.user_id, role=ctx.role)
        return TokenResponse(
            access_token=create_access_token(ctx),
            user=SessionUser(
                id=row["id"],
                email=row["email"],
                name=row["name"],
                role=row["role"],
                pharmacy_id=pharmacy_id,
                pharmacy_name=row["pharmacy_name"],
            ),
        )
