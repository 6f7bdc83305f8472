import os
import structlog
from fastapi import Request

from core.logging import BusinessEvents


async def log_api_entry(request: Request, call_next):
    """Middleware to log API entries with request details"""
    # Get a fresh logger each time to ensure test configurations are respected
    log = structlog.get_logger(__name__)

    # Checkout session ids travel in the query string
    redact = os.getenv("REDACT_QUERY_PARAMS", "").lower() in {"1", "true", "yes"}
    log.info(
        BusinessEvents.API_ENTRY,
        method=request.method,
        url=request.url.path if redact else str(request.url),
        client_host=request.client.host if request.client else None,
        query_params=None if redact else dict(request.query_params),
    )
    response = await call_next(request)
    log.info(
        "api.response",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
    )
    return response
