"""
Rate limiting for checkout traffic.

Browsing is limited per client address. Placing orders and creating payment
holds are limited per buyer, so shoppers behind one NAT do not starve each
other and one account cannot spread attempts across addresses.
"""
import logging

from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.requests import Request
from starlette.responses import JSONResponse

from storefront.core.config import settings
from storefront.core.exceptions import RateLimitedError
from storefront.core.security import decode_token

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER_SECONDS = 60


def client_ip(request: Request) -> str:
    """Peer address; X-Forwarded-For only counts behind a trusted proxy."""
    if settings.RATE_LIMIT_TRUST_FORWARDED:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def buyer_key(request: Request) -> str:
    """Token subject when a valid bearer token is present, else the address."""
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme.lower() == "bearer" and token:
        payload = decode_token(token.strip())
        if payload and payload.get("sub"):
            return f"user:{payload['sub']}"
    return f"ip:{client_ip(request)}"


limiter = Limiter(
    key_func=client_ip,
    enabled=settings.RATE_LIMIT_ENABLED,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
)


def retry_after_seconds(exc: RateLimitExceeded) -> int:
    try:
        return int(exc.limit.limit.get_expiry())
    except AttributeError:
        return DEFAULT_RETRY_AFTER_SECONDS


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 in the same envelope as every other storefront error."""
    retry_after = retry_after_seconds(exc)
    logger.warning(
        f"Rate limit exceeded: {buyer_key(request)} on {request.url.path} ({exc.detail})"
    )

    error = RateLimitedError(retry_after)
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_dict(),
        headers={"Retry-After": str(retry_after)},
    )


def get_checkout_limit():
    """Per-buyer limit for order placement and payment-intent creation."""
    return limiter.limit(settings.RATE_LIMIT_CHECKOUT, key_func=buyer_key)
