"""
Exception handlers mapping ledger errors to HTTP responses
"""

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..errors import (
    AccountNotFoundError,
    InvalidRequestError,
    LedgerError,
    LimitExceededError,
    MalformedRequestError,
    StorageFailureError,
)
from ..logging_config import get_logger


logger = get_logger("core_ledger.api")

# Checked in order; subclasses before their bases
STATUS_CODES = (
    (MalformedRequestError, 400),
    (InvalidRequestError, 422),
    (AccountNotFoundError, 404),
    (LimitExceededError, 422),
    (StorageFailureError, 500),
)


def status_code_for(exc: LedgerError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 500


def create_error_response(status_code: int, code: str, message: str,
                          field: Optional[str] = None) -> JSONResponse:
    error: Dict[str, Any] = {"code": code, "message": message}
    if field:
        error["field"] = field
    return JSONResponse(status_code=status_code, content={"error": error})


async def ledger_exception_handler(request: Request, exc: LedgerError):
    status_code = status_code_for(exc)

    if status_code >= 500:
        logger.error(
            "Storage failure on %s %s: %s", request.method, request.url.path, exc.message,
            exc_info=exc,
        )
        # Don't expose driver details
        return create_error_response(status_code, exc.code, "Storage unavailable")

    return create_error_response(
        status_code, exc.code, exc.message, getattr(exc, "field", None)
    )


def add_error_handlers(app: FastAPI) -> None:
    """Register ledger error handlers on the app"""
    app.add_exception_handler(LedgerError, ledger_exception_handler)
