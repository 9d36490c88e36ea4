"""Orderflow FastAPI application.

Web server for the ordering domain. Commands are processed synchronously
inside a request-scoped domain context.

Usage:
    uvicorn app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (notification handlers fire in UoW)
#   - "production" → event_processing = "async" (handlers fire via Engine)
import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ordering.domain import ordering
from ordering.order.numbering import ensure_order_sequence
from ordering.utils.logging import bind_request_context, clear_request_context, configure_logging

configure_logging()
ordering.init()
with ordering.domain_context():
    ensure_order_sequence()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_PREFIXES = ("/orders", "/payments", "/assignments", "/riders", "/settings")


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    if path.startswith(_ROUTE_PREFIXES):
        return ordering
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Orderflow API",
    description="Order lifecycle, payment reconciliation and rider dispatch",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the Protean domain context and bind request details to log lines."""
    domain = _resolve_domain(request.url.path)
    if domain is None:
        # Health check, docs, etc.
        return await call_next(request)

    bind_request_context(
        request_id=request.headers.get("x-request-id") or str(uuid.uuid4()),
        method=request.method,
        path=request.url.path,
    )
    try:
        with domain.domain_context():
            response = await call_next(request)
    finally:
        clear_request_context()
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from ordering.api.errors import register_error_handlers  # noqa: E402
from ordering.api.routes import (  # noqa: E402
    assignment_router,
    order_router,
    payment_router,
    rider_router,
    settings_router,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(assignment_router)
app.include_router(rider_router)
app.include_router(settings_router)

register_error_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": ordering.name}})
