"""Checkout FastAPI application.

Web server that processes checkout commands synchronously via HTTP.
Requests under the checkout prefixes are wrapped in the checkout domain
context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV selects the config overlay and the log format.
from checkout.domain import checkout  # noqa: E402
from checkout.utils.logging import add_context, clear_context, configure_logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

configure_logging()
checkout.init()

# ---------------------------------------------------------------------------
# Route-to-domain mapping
# ---------------------------------------------------------------------------
_ROUTE_DOMAIN_MAP = {
    "/carts": checkout,
    "/coupons": checkout,
    "/orders": checkout,
    "/payments": checkout,
    "/refunds": checkout,
}


def _resolve_domain(path: str):
    """Return the domain for the given request path, or None."""
    for prefix, domain in _ROUTE_DOMAIN_MAP.items():
        if path.startswith(prefix):
            return domain
    return None


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Checkout API",
    description="Carts, coupons, orders, payments and refunds",
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
    """Push the Protean domain context for each checkout request."""
    domain = _resolve_domain(request.url.path)
    if domain is not None:
        clear_context()
        add_context(method=request.method, path=request.url.path)
        with domain.domain_context():
            response = await call_next(request)
        return response
    # No domain match — pass through (health check, docs, etc.)
    return await call_next(request)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from checkout.api.routes import (  # noqa: E402
    cart_router,
    coupon_router,
    order_router,
    payment_router,
    refund_router,
    register_gateway_error_handlers,
)

register_exception_handlers(app)
register_gateway_error_handlers(app)

app.include_router(cart_router)
app.include_router(coupon_router)
app.include_router(order_router)
app.include_router(payment_router)
app.include_router(refund_router)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    from checkout.gateway import get_gateway

    return JSONResponse(
        content={
            "status": "ok",
            "domain": checkout.name,
            "gateway": type(get_gateway()).__name__,
        }
    )
