"""
Domain exceptions and their HTTP mapping.

Services raise these; the handlers registered here turn them into the JSON
`{"detail": ...}` envelope FastAPI uses for HTTPException.
"""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

PROVIDER_ERROR_MESSAGE = "Payment provider error. Please try again later."


class ServiceError(Exception):
    """Base class for errors raised by service-layer code."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidStateError(ServiceError):
    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class PaymentProviderError(ServiceError):
    """Stripe rejected or failed a call. The message is safe to show to the user."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, code: str = None, decline_code: str = None):
        super().__init__(message)
        self.code = code
        self.decline_code = decline_code


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        message = exc.message
        if isinstance(exc, PaymentProviderError):
            logger.warning(f"Payment provider error on {request.url.path}: {exc.message} (code={exc.code})")
            message = PROVIDER_ERROR_MESSAGE
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": message},
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled error on {request.url}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
