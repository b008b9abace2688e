"""Translate domain exceptions into HTTP responses"""

import logging
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tenancy_ledger.api.dependencies import get_request_id
from tenancy_ledger.domain.exceptions import (
    ConcurrencyConflictError,
    DomainException,
    HouseOccupiedError,
    InvariantViolation,
    NotFoundError,
    PendingObligationsError,
    ValidationError,
)

# Most specific first
STATUS_CODES = [
    (HouseOccupiedError, 409),
    (ValidationError, 400),
    (NotFoundError, 404),
    (PendingObligationsError, 409),
    (ConcurrencyConflictError, 409),
    (InvariantViolation, 500),
]


def status_for(exc: DomainException) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Every domain error has already rolled back its unit of work"""
    request_id = get_request_id(request)
    status_code = status_for(exc)
    content = {"detail": str(exc), "error": type(exc).__name__}

    if isinstance(exc, PendingObligationsError):
        content["pending_periods"] = [{"year": year, "month": month} for year, month in exc.periods]

    if status_code >= 500:
        logging.error(f"Ledger invariant violated: {exc}", extra={"request_id": request_id, "path": request.url.path})
        content["detail"] = "Internal server error"
    else:
        logging.warning(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id, "path": request.url.path})

    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainException, domain_exception_handler)
