"""Domain error → HTTP response mapping.

Every error response uses the same envelope:
    {"code": "not_found", "message": "...", "details": null, "request_id": "uuid"}
"""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from kirana_gateway.api.dependencies import get_request_id
from kirana_gateway.domain.exceptions import (
    ConcurrentUpdateError,
    CreditLimitExceededError,
    DomainException,
    DuplicateError,
    InvalidScheduleError,
    InvalidTransitionError,
    NotFoundError,
    PolicyViolationError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; first isinstance match wins
ERROR_STATUS = [
    (NotFoundError, 404, "not_found"),
    (ValidationError, 422, "validation_error"),
    (InvalidScheduleError, 422, "invalid_schedule"),
    (PolicyViolationError, 400, "policy_violation"),
    (CreditLimitExceededError, 400, "credit_limit_exceeded"),
    (DuplicateError, 409, "duplicate"),
    (InvalidTransitionError, 409, "invalid_transition"),
    (ConcurrentUpdateError, 409, "concurrent_update"),
]


def _error_payload(code: str, message: str, details: Any, request_id: str) -> dict:
    return {
        "code": code,
        "message": message,
        "details": details,
        "request_id": request_id,
    }


def status_for(exc: DomainException) -> tuple[int, str]:
    for exc_type, status_code, code in ERROR_STATUS:
        if isinstance(exc, exc_type):
            return status_code, code
    return 400, "domain_error"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        request_id = get_request_id(request)
        status_code, code = status_for(exc)
        logger.warning(
            f"{type(exc).__name__}: {exc}",
            extra={"request_id": request_id, "path": request.url.path},
        )
        return JSONResponse(
            status_code=status_code,
            content=_error_payload(code, str(exc), None, request_id),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        request_id = get_request_id(request)
        return JSONResponse(
            status_code=422,
            content=_error_payload("validation_error", "Validation error", jsonable_errors(exc), request_id),
        )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Pydantic error dicts with non-JSON context values stringified"""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors
