# src/core/dependencies.py
from uuid import UUID
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession
from db.database import get_db
from schemas.access_schemas import AccessContext
from services.relationship_service import relationship_service
from utils.exceptions import AccessDeniedException, UnauthorizedException
from utils.logger import setup_logger
from utils.security import decode_token

logger = setup_logger("AUTH DEPENDENCY")


async def get_current_user(
    authorization: str = Header(default=None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> AccessContext:
    """
    Resolve the bearer token to the acting user's access context

    Args:
        authorization: Bearer token from Authorization header
        db: Async database session

    Returns:
        AccessContext with role and current assignments

    Raises:
        UnauthorizedException: 401 if the token is missing or invalid
    """
    if not authorization:
        logger.warning("Authorization header missing")
        raise UnauthorizedException("Authorization header is missing")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        logger.warning(f"Invalid auth scheme: {scheme}")
        raise UnauthorizedException("Invalid authentication scheme")

    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise UnauthorizedException("Could not validate credentials")

    try:
        user_id = UUID(payload["sub"])
    except ValueError:
        raise UnauthorizedException("Invalid token payload")

    ctx = await relationship_service.load_access_context(db, user_id)
    logger.debug(f"Authenticated user: {ctx.user_id} ({ctx.role})")
    return ctx


async def get_current_active_user(
    ctx: AccessContext = Depends(get_current_user),
) -> AccessContext:
    """Reject deactivated accounts before any handler runs"""
    if not ctx.is_active:
        logger.warning(f"Inactive user attempted access: {ctx.user_id}")
        raise AccessDeniedException("Inactive user")
    return ctx


class RoleChecker:
    def __init__(self, allowed_roles: list):
        self.allowed_roles = allowed_roles

    async def __call__(
        self, ctx: AccessContext = Depends(get_current_active_user)
    ) -> AccessContext:
        if ctx.role not in self.allowed_roles:
            logger.warning(
                f"Role check failed for {ctx.user_id}. "
                f"Required: {self.allowed_roles}, Has: {ctx.role}"
            )
            raise AccessDeniedException("Operation not permitted")
        return ctx
