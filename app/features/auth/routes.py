"""API routes for authentication."""

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.exceptions import DatabaseError
from app.core.logging import get_logger
from app.core.security import SecurityContext, get_security_context
from app.features.auth.schemas import CurrentUser, LoginRequest, TokenResponse
from app.features.auth.service import AuthService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Log in",
    description="""
Exchange an email and password for a bearer token.

**Token**: HS256 JWT carrying the user id, role and pharmacy. Send it as
`Authorization: Bearer <access_token>` on every other route.

**Errors**:
- 401 when the email is unknown or the password is wrong (same message)
""",
)
async def login(
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> TokenResponse:
    service = AuthService()
    try:
        return await service.login(db=db, credentials=credentials)
    except SQLAlchemyError as e:
        logger.error("auth.login_query_failed", error=str(e), error_type=type(e).__name__)
        raise DatabaseError(message="Login failed", details={"error": str(e)}) from e


@router.get(
    "/me",
    response_model=CurrentUser,
    summary="Current user",
)
async def current_user(ctx: SecurityContext = Depends(get_security_context)) -> CurrentUser:
    """Return the identity carried by the bearer token."""
    return CurrentUser(
        id=ctx.user_id,
        role=ctx.role,
        is_admin=ctx.is_admin,
        pharmacy_id=ctx.pharmacy_id,
        pharmacy_name=ctx.pharmacy_name,
    )
