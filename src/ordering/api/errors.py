"""Map ordering errors to HTTP responses.

Every error body has the same shape::

    {"detail": "...", "error_type": "PRICE_MISMATCH", "errors": [...]}

``errors`` lists one entry per offending cart line when a checkout is
rejected, and the error itself otherwise.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ObjectNotFoundError, ValidationError

from ordering.errors import (
    AlreadyPaid,
    CheckoutRejected,
    GatewayError,
    InvalidSignature,
    InvalidTransition,
    NotFound,
    OrderingError,
    OutOfStock,
    PriceMismatch,
    TotalMismatch,
    TransientStorageError,
    UnresolvedCorrelation,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS_CODES = {
    NotFound: 404,
    OutOfStock: 409,
    PriceMismatch: 409,
    TotalMismatch: 409,
    CheckoutRejected: 409,
    AlreadyPaid: 409,
    InvalidTransition: 409,
    InvalidSignature: 400,
    UnresolvedCorrelation: 422,
    TransientStorageError: 503,
    GatewayError: 502,
}


def error_response(exc: OrderingError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if isinstance(exc, CheckoutRejected):
        errors = exc.to_dict()["errors"]
    else:
        errors = [exc.to_dict()]
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error_type": exc.code, "errors": errors},
    )


async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    """Map OrderingError subclasses to appropriate HTTP responses."""
    logger.info("request_rejected", path=request.url.path, error_type=exc.code)
    return error_response(exc)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    errors = [{"field": field, "messages": messages} for field, messages in exc.messages.items()]
    return JSONResponse(
        status_code=422,
        content={"detail": "Invalid request", "error_type": "VALIDATION_ERROR", "errors": errors},
    )


async def object_not_found_handler(request: Request, exc: ObjectNotFoundError) -> JSONResponse:
    return JSONResponse(
        status_code=404,
        content={"detail": "Not found", "error_type": NotFound.code, "errors": []},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(OrderingError, ordering_error_handler)
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(ObjectNotFoundError, object_not_found_handler)
