"""
Domain errors raised by the services and rendered by a single FastAPI
exception handler as ``{"message": ...}`` with the carried status code.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException


class DomainError(Exception):
    """Base class for errors that map onto an HTTP status."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(DomainError):
    status_code = status.HTTP_404_NOT_FOUND


class InvalidRequestError(DomainError):
    status_code = status.HTTP_400_BAD_REQUEST


class InsufficientStockError(DomainError):
    """Requested quantity exceeds the stock currently available."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, menu_name: str, available: int, requested: int) -> None:
        super().__init__(
            f'Insufficient stock for menu "{menu_name}". '
            f"Available: {available}, Requested: {requested}"
        )
        self.menu_name = menu_name
        self.available = available
        self.requested = requested


class InvalidStateError(DomainError):
    """A status transition precondition is not met."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConflictError(DomainError):
    status_code = status.HTTP_409_CONFLICT


class UnauthorizedError(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(DomainError):
    status_code = status.HTTP_403_FORBIDDEN


class InvalidSignatureError(DomainError):
    """Webhook notification failed authenticity verification."""

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Invalid webhook signature") -> None:
        super().__init__(message)


class GatewayNotConfiguredError(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "Webhook handler not configured") -> None:
        super().__init__(message)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


async def _domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: dict[str, str] = {}
    for issue in exc.errors():
        # Drop the leading "body"/"query"/"path" location segment
        key = ".".join(str(part) for part in issue["loc"][1:])
        if key:
            errors[key] = issue["msg"]
    message = "; ".join(f"{k}: {v}" for k, v in errors.items()) or "Validation error"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": f"Validation error: {message}", "errors": errors},
    )


async def _http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    else:
        message = str(exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"message": message})


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, _domain_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, _http_error_handler)
