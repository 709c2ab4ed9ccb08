"""Rate limiting middleware for API protection"""
from slowapi import Limiter
from slowapi.util import get_remote_address
from parley.config import settings


# Credential endpoints are keyed by client address; there is no identity yet
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=settings.RATE_LIMIT_DEFAULT,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=settings.RATE_LIMIT_ENABLED,
)


# Rate limit configurations for different endpoints
RATE_LIMITS = {
    # Credential guessing targets
    "login": "10/minute",
    "register": "5/minute",
    "refresh": "30/minute",
    "change_password": "5/minute",
}


def get_rate_limit(endpoint: str) -> str:
    """Get rate limit for specific endpoint"""
    return RATE_LIMITS.get(endpoint, settings.RATE_LIMIT_DEFAULT[0])
