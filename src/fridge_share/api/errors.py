"""Maps domain failures to HTTP responses."""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from fridge_share.domain.errors import (
    AlreadyMemberError,
    CodeGenerationExhaustedError,
    ExpiryRequiredError,
    ForbiddenError,
    FridgeError,
    InsufficientStockError,
    InvalidInputError,
    NoValidSelectionError,
    NotFoundError,
    NotMemberError,
    OwnershipTransferRequiredError,
    TransientError,
)

_logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[FridgeError], int] = {
    InvalidInputError: status.HTTP_400_BAD_REQUEST,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    ForbiddenError: status.HTTP_403_FORBIDDEN,
    AlreadyMemberError: status.HTTP_409_CONFLICT,
    NotMemberError: status.HTTP_409_CONFLICT,
    OwnershipTransferRequiredError: status.HTTP_409_CONFLICT,
    InsufficientStockError: status.HTTP_409_CONFLICT,
    ExpiryRequiredError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    CodeGenerationExhaustedError: status.HTTP_503_SERVICE_UNAVAILABLE,
    NoValidSelectionError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TransientError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: FridgeError) -> int:
    for error_type in type(exc).__mro__:
        code = _STATUS_CODES.get(error_type)
        if code is not None:
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(exc: FridgeError) -> dict[str, object]:
    body: dict[str, object] = {"error": exc.kind, "detail": exc.message}
    if isinstance(exc, TransientError):
        body["retry"] = True
    if isinstance(exc, InsufficientStockError):
        body["shortfalls"] = [
            {
                "group_id": item.group_id,
                "name": item.name,
                "requested": item.requested,
                "available": item.available,
            }
            for item in exc.shortfalls
        ]
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """Install the handler that renders every ``FridgeError``."""

    @app.exception_handler(FridgeError)
    async def fridge_error_handler(request: Request, exc: FridgeError) -> JSONResponse:
        code = status_code_for(exc)
        if isinstance(exc, TransientError):
            _logger.warning(
                "%s %s failed: %s", request.method, request.url.path, exc.__cause__
            )
        return JSONResponse(status_code=code, content=error_body(exc))
