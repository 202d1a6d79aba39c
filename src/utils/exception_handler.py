# src/utils/exception_handler.py
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from .logger import setup_logger
from .exceptions import BaseAPIException

logger = setup_logger("ERROR_HANDLERS")


def error_body(kind: str, message, status_code: int) -> dict:
    return {"message": message, "type": kind, "status": status_code}


def setup_exception_handlers(app: FastAPI):
    """Map the domain taxonomy to JSON; 403 and 404 stay distinct"""

    @app.exception_handler(BaseAPIException)
    async def domain_exception_handler(request: Request, exc: BaseAPIException):
        kind = exc.__class__.__name__
        if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(f"{kind} on {request.method} {request.url.path}: {exc.detail}")
        elif exc.status_code == status.HTTP_404_NOT_FOUND:
            logger.info(f"{request.method} {request.url.path}: {exc.detail}")
        else:
            logger.warning(f"{kind} on {request.method} {request.url.path}: {exc.detail}")

        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(kind, exc.detail, exc.status_code),
            headers=exc.headers,
        )

    # Store errors are normally converted by handle_db_exception; this catches leaks
    @app.exception_handler(SQLAlchemyError)
    async def store_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(
            f"Unconverted store error on {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body(
                "StoreException",
                "Database operation failed",
                status.HTTP_500_INTERNAL_SERVER_ERROR,
            ),
        )
