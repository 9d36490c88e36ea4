"""Render ordering errors as ``{"error": {"code", "message"}}`` responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.exceptions import ExpectedVersionError
from protean.integrations.fastapi import register_exception_handlers

from ordering.errors import OrderingError

logger = structlog.get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    """Install handlers for ordering errors on top of Protean's own."""
    register_exception_handlers(app)

    @app.exception_handler(OrderingError)
    async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("Request failed upstream", path=request.url.path, code=exc.code, message=exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(ExpectedVersionError)
    async def version_conflict_handler(request: Request, exc: ExpectedVersionError) -> JSONResponse:
        logger.info("Concurrent update lost", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=409,
            content={"error": {"code": "CONFLICT", "message": "The record was changed by another request, reload and retry"}},
        )
