"""
Shared rate limiting configuration.

The limiter lives here rather than in main.py so routers can decorate
endpoints without importing the app. Callers with a valid token are bucketed
by their user id, everyone else (webhooks, health, forged tokens) by address.
"""
from fastapi import HTTPException, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from advisor_chooser.core.auth import verify_token
from advisor_chooser.core.config import settings


def rate_limit_key(request: Request) -> str:
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            subject = verify_token(token).get("sub")
        except HTTPException:
            subject = None
        if subject:
            return f"user:{subject}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=rate_limit_key,
    default_limits=[settings.rate_limit_default],
    enabled=settings.rate_limit_enabled,
    storage_uri=settings.rate_limit_storage_uri,
)

rate_limit_handler = _rate_limit_exceeded_handler
rate_limit_exception = RateLimitExceeded
