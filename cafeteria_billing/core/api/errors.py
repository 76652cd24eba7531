"""Normalized error envelope for the cafeteria billing API.

Every API error follows:
    {"error": {"type": "<CODE>", "message": "<human readable>", "request_id": "<id>"}}

Stable error types:
    VALIDATION_ERROR, NOT_FOUND, DISPATCH_ERROR, INTERNAL_ERROR
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException
from starlette.responses import JSONResponse

from cafeteria_billing.core.errors import (
    BillingError,
    DispatchError,
    InvalidConfiguration,
    InvalidPeriod,
    NotFoundError,
)

logger = logging.getLogger("cafeteria.api")

_STATUS_TO_TYPE: Dict[int, str] = {
    400: "VALIDATION_ERROR",
    404: "NOT_FOUND",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    502: "DISPATCH_ERROR",
}


def make_error_envelope(
    error_type: str, message: str, request_id: Optional[str] = None
) -> Dict[str, Any]:
    """Build the standard error envelope dict."""
    return {
        "error": {
            "type": error_type,
            "message": message,
            "request_id": request_id,
        }
    }


def _status_for(exc: BillingError) -> int:
    if isinstance(exc, (InvalidPeriod, InvalidConfiguration)):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, DispatchError):
        return 502
    return 400


async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Map library errors onto HTTP statuses with the normalized envelope."""
    request_id = getattr(request.state, "request_id", None)
    status = _status_for(exc)
    return JSONResponse(
        status_code=status,
        content=make_error_envelope(_STATUS_TO_TYPE.get(status, "VALIDATION_ERROR"), str(exc), request_id),
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Convert HTTPException to the normalized error envelope."""
    request_id = getattr(request.state, "request_id", None)
    error_type = _STATUS_TO_TYPE.get(exc.status_code, "INTERNAL_ERROR")

    if isinstance(exc.detail, dict):
        raw = exc.detail.get("error") or exc.detail.get("message") or exc.detail
        message = raw if isinstance(raw, str) else str(raw)
    elif isinstance(exc.detail, str):
        message = exc.detail
    else:
        message = str(exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content=make_error_envelope(error_type, message, request_id),
    )


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Convert Pydantic validation errors to the normalized envelope."""
    request_id = getattr(request.state, "request_id", None)
    errors = exc.errors()
    if errors:
        parts = []
        for err in errors:
            loc = " -> ".join(str(l) for l in err.get("loc", []))
            msg = err.get("msg", "")
            parts.append(f"{loc}: {msg}" if loc else msg)
        message = "; ".join(parts)
    else:
        message = str(exc)

    return JSONResponse(
        status_code=422,
        content=make_error_envelope("VALIDATION_ERROR", message, request_id),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions -- return 500 with envelope."""
    request_id = getattr(request.state, "request_id", None)
    logger.error("Unhandled error request_id=%s", request_id, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=make_error_envelope("INTERNAL_ERROR", "Internal server error.", request_id),
    )
