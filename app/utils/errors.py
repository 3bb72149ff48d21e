import traceback
from typing import Dict, Tuple, Type

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from .logging import get_logger
from .responses import ResponseBuilder

logger = get_logger()


class DatabaseError(Exception):
    """A write violated a constraint that the service could not reconcile."""

    def __init__(self, message: str, error_code: str = "DB_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class BusinessLogicError(Exception):
    """Request is well-formed but cannot be carried out (unknown scheduler action, ...)."""

    def __init__(self, message: str, error_code: str = "BLOC_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class AuthenticationError(Exception):
    """Missing or wrong cron secret."""

    def __init__(
        self, message: str = "Authentication failed", error_code: str = "UNAUTHORIZED"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class NotFoundError(Exception):
    def __init__(
        self, message: str = "Resource not found", error_code: str = "NOT_FOUND"
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class DeliveryError(Exception):
    """Transport-level failure while sending a notification; the send may be retried."""

    def __init__(self, message: str, error_code: str = "DELIVERY_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


# exception -> (HTTP status, meta.error_type, log level)
_ENVELOPED_ERRORS: Dict[Type[Exception], Tuple[int, str, str]] = {
    DatabaseError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "DATABASE_ERROR", "ERROR"),
    BusinessLogicError: (status.HTTP_400_BAD_REQUEST, "BUSINESS_ERROR", "ERROR"),
    AuthenticationError: (status.HTTP_401_UNAUTHORIZED, "AUTHENTICATION_ERROR", "WARNING"),
    NotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND_ERROR", "WARNING"),
    DeliveryError: (status.HTTP_502_BAD_GATEWAY, "DELIVERY_ERROR", "ERROR"),
}


def _format_validation_errors(errors) -> list:
    return [
        {
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in errors
    ]


def _register_enveloped_error(
    app: FastAPI, exc_class: Type[Exception], status_code: int, error_type: str, level: str
) -> None:
    async def handler(request: Request, exc: Exception):
        logger.log(level, f"{exc_class.__name__}: {exc.message}")
        return ResponseBuilder.error(
            request=request,
            message=exc.message,
            error_code=exc.error_code,
            status_code=status_code,
            meta={"error_type": error_type},
        )

    app.add_exception_handler(exc_class, handler)


def setup_error_handlers(app: FastAPI):
    """Translate service exceptions and framework errors into the response envelope."""

    for exc_class, (status_code, error_type, level) in _ENVELOPED_ERRORS.items():
        _register_enveloped_error(app, exc_class, status_code, error_type, level)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.error(f"HTTP Exception: {exc.status_code} - {exc.detail}")
        return ResponseBuilder.error(
            request=request,
            message=str(exc.detail),
            error_code="HTTP_ERROR",
            status_code=exc.status_code,
            meta={"http_status": exc.status_code},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        logger.warning(f"Request Validation Error: {exc.errors()}")
        return ResponseBuilder.error(
            request=request,
            message="Request validation failed",
            errors=_format_validation_errors(exc.errors()),
            error_code="VALIDATION_ERROR",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        )

    @app.exception_handler(SQLAlchemyError)
    async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(f"SQLAlchemy Error: {exc}")

        # Don't expose internal database errors to users
        return ResponseBuilder.error(
            request=request,
            message="A database error occurred",
            error_code="DATABASE_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "SQLALCHEMY_ERROR"},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled Exception: {exc}\n{traceback.format_exc()}")
        return ResponseBuilder.error(
            request=request,
            message="An internal server error occurred",
            error_code="INTERNAL_ERROR",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            meta={"error_type": "INTERNAL_ERROR"},
        )
