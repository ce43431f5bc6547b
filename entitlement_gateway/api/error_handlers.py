"""Global exception handlers.

Providers decide whether to redeliver from the status code alone, so every
failure leaves as a JSON response with a meaningful status: never an HTML
error page or a dropped connection.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from entitlement_gateway.core.errors import GatewayError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError):
        logger.error("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        # catch-all, never leaks internal details
        logger.error("Unhandled exception on %s", request.url.path, exc_info=exc)
        return JSONResponse(status_code=500, content={"error": "internal_error"})
