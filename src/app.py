"""Marketplace FastAPI application.

Processes commands synchronously via HTTP. Every request is wrapped in the
marketplace domain context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied.
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from marketplace.domain import marketplace  # noqa: E402
from marketplace.errors import ConcurrencyConflict, ExternalDependencyError
from marketplace.utils.logging import add_context, clear_context, configure_logging
from protean.integrations.fastapi import register_exception_handlers

configure_logging()
marketplace.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Marketplace API",
    description="Multi-seller order fulfillment and inventory ledgers",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)


@app.exception_handler(ConcurrencyConflict)
async def concurrency_conflict_handler(request: Request, exc: ConcurrencyConflict):
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(ExternalDependencyError)
async def external_dependency_handler(request: Request, exc: ExternalDependencyError):
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the marketplace domain context and bind request log context."""
    if request.url.path in ("/health", "/docs", "/openapi.json"):
        return await call_next(request)
    add_context(method=request.method, path=request.url.path)
    try:
        with marketplace.domain_context():
            response = await call_next(request)
    finally:
        clear_context()
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from marketplace.api import (  # noqa: E402
    gift_card_router,
    maintenance_router,
    order_router,
    payment_router,
    payout_router,
    stock_router,
    suborder_router,
)

app.include_router(order_router)
app.include_router(payment_router)
app.include_router(suborder_router)
app.include_router(stock_router)
app.include_router(gift_card_router)
app.include_router(payout_router)
app.include_router(maintenance_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(content={"status": "ok", "domain": {"name": marketplace.name}})
