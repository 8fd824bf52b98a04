"""
Maps ArchlogError kinds to HTTP responses.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from archlog.errors import ArchlogError, BudgetExceededError, RateLimitedError
from archlog.models.api_responses import ErrorResponse

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "validation": 400,
    "access_revoked": 403,
    "not_found": 404,
    "already_running": 409,
    "rate_limited": 429,
    "budget_exceeded": 429,
    "host": 502,
    "provider": 502,
    "extraction": 502,
    "storage": 500,
}


async def archlog_error_handler(request: Request, exc: ArchlogError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 500)
    details = None
    headers = None
    if isinstance(exc, BudgetExceededError):
        details = {"reset_at": exc.reset_at.isoformat()}
    elif isinstance(exc, RateLimitedError):
        details = {"retry_after": exc.retry_after}
        headers = {"Retry-After": str(int(exc.retry_after))}

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.kind}")

    body = ErrorResponse(error=exc.kind, message=exc.message, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ArchlogError, archlog_error_handler)
