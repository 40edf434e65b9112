import logging
import os

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

GENERAL_LIMIT = "100/15minutes"
LOGIN_LIMIT = "10/15minutes"
REGISTRATION_LIMIT = "5/hour"


def _enabled() -> bool:
    return os.environ.get("RATE_LIMIT_ENABLED", "true").strip().lower() not in {"0", "false", "no", "off"}


# Keyed on the socket peer. X-Forwarded-For is only honoured once a trusted
# proxy rewrites the peer address (see TRUSTED_PROXY_IPS in server.py).
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[GENERAL_LIMIT],
    headers_enabled=True,
    enabled=_enabled(),
    storage_uri=os.environ.get("RATE_LIMIT_STORAGE_URI", "memory://"),
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("Rate limit hit for %s on %s", get_remote_address(request), request.url.path)
    response = JSONResponse({"detail": exc.detail}, status_code=429)
    # Adds Retry-After and the X-RateLimit-* headers for the limit that fired.
    return request.app.state.limiter._inject_headers(response, request.state.view_rate_limit)
