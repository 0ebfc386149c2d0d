"""Exception handlers shared by the app and router tests."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ledgerlink.errors import XeroError

logger = logging.getLogger(__name__)


async def xero_error_handler(request: Request, exc: XeroError) -> JSONResponse:
    """Render Xero failures with their status and reconnect hint."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "needs_reconnect": exc.needs_reconnect},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(XeroError, xero_error_handler)
