# src/utils/exceptions.py
from typing import Any, Optional
from fastapi import status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from .logger import setup_logger

logger = setup_logger("EXCEPTIONS")


class BaseAPIException(Exception):
    """Domain error carrying the HTTP status the route layer should answer with"""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        detail: Any = None,
        headers: Optional[dict] = None,
    ) -> None:
        super().__init__(detail)
        self.detail = detail
        self.headers = headers


class NotFoundException(BaseAPIException):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, detail: str = "Resource not found"):
        super().__init__(detail=detail)


class AccessDeniedException(BaseAPIException):
    status_code = status.HTTP_403_FORBIDDEN

    def __init__(self, detail: str = "Operation not authorized"):
        super().__init__(detail=detail)


class ValidationFailedException(BaseAPIException):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, detail: str = "Unprocessable entity"):
        super().__init__(detail=detail)


class DuplicateActionException(BaseAPIException):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = "Action already performed"):
        super().__init__(detail=detail)


class ConflictException(BaseAPIException):
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, detail: str = "State transition not permitted"):
        super().__init__(detail=detail)


class UnauthorizedException(BaseAPIException):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class StoreException(BaseAPIException):
    """Raised when the document store fails for reasons other than the caller's input"""

    def __init__(self, detail: str = "Internal server error"):
        super().__init__(detail=detail)


async def handle_db_exception(
    db: AsyncSession, logger, operation: str, exception: Exception
):
    """Handle database exceptions with consistent logging and rollback"""
    await db.rollback()
    logger.error(f"Database error during {operation}: {str(exception)}", exc_info=True)

    # Re-raise domain exceptions untouched
    if isinstance(exception, BaseAPIException):
        raise exception

    if isinstance(exception, IntegrityError):
        raise ConflictException(f"Integrity violation during {operation}") from exception

    raise StoreException(f"Internal server error during {operation}") from exception
