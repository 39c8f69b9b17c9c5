"""
Storefront Backend
FastAPI application entry point

- Rate limiting with SlowAPI on checkout paths
- Business errors rendered by storefront_error_handler, body validation as 400
- Error sanitization middleware for everything else
- Request size limits
- Health endpoint with DB ping
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text

from storefront.api.routes import admin_orders, admin_products, cart, orders, payments, products
from storefront.core.config import settings
from storefront.core.database import AsyncSessionLocal, engine
from storefront.core.error_handler import (
    ErrorSanitizationMiddleware,
    request_validation_error_handler,
    storefront_error_handler,
)
from storefront.core.exceptions import StorefrontError
from storefront.core.rate_limit import limiter, rate_limit_exceeded_handler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log the payment mode on startup, dispose the engine on shutdown."""
    if settings.payments_enabled:
        logger.info("Payment processing ENABLED (stripe, manual capture)")
    else:
        logger.warning("Payment processing DISABLED: STRIPE_SECRET_KEY not configured")

    yield

    await engine.dispose()
    logger.info("Database engine disposed")


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    description="""
Order checkout and payment authorization backend.

- **Cart**: server-side cart the checkout consumes
- **Orders**: checkout, history, tracking and self-service cancellation
- **Admin**: confirm (capture), reject (release), fulfilment status updates
- **Payments**: manual-capture payment intents and processor webhooks

Checkout endpoints: 10 requests/minute. General: 100 requests/minute.
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Cart", "description": "Shopping cart operations"},
        {"name": "Orders", "description": "Order placement and lifecycle"},
        {"name": "Admin - Orders", "description": "Order administration"},
        {"name": "Payments", "description": "Payment authorization and webhooks"},
    ],
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
app.add_exception_handler(StorefrontError, storefront_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)


MAX_REQUEST_SIZE = 1 * 1024 * 1024  # 1MB


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests that exceed the size limit."""

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit() and int(content_length) > MAX_REQUEST_SIZE:
            logger.warning(
                f"Request size limit exceeded: {content_length} bytes on {request.url.path}"
            )
            return JSONResponse(
                status_code=413,
                content={
                    "error": "request_too_large",
                    "message": f"Request body exceeds maximum size of {MAX_REQUEST_SIZE // (1024*1024)}MB",
                },
            )
        return await call_next(request)


app.add_middleware(RequestSizeLimitMiddleware)
app.add_middleware(ErrorSanitizationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "Stripe-Signature"],
)

app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(cart.router, prefix="/api/cart", tags=["Cart"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(admin_orders.router, prefix="/api/admin/orders", tags=["Admin - Orders"])
app.include_router(admin_products.router, prefix="/api/admin/products", tags=["Admin - Products"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])


@app.get("/", tags=["Health"])
async def root():
    return {
        "message": f"{settings.APP_NAME} API",
        "version": settings.APP_VERSION,
        "status": "operational",
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """DB ping; 503 when the database is unreachable."""
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "payments": "enabled" if settings.payments_enabled else "disabled",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
        health_status["database"] = "connected"
    except Exception as e:
        logger.error(f"Health check database ping failed: {type(e).__name__}")
        health_status["database"] = "unreachable"
        health_status["status"] = "unhealthy"
        return JSONResponse(status_code=503, content=health_status)

    return health_status
