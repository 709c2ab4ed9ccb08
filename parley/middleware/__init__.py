"""Middleware modules for production-ready features"""
from parley.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_event,
    record_reuse_detected,
    record_revocation,
)
from parley.middleware.rate_limit import limiter, get_rate_limit

__all__ = [
    "MonitoringMiddleware",
    "record_auth_event",
    "record_reuse_detected",
    "record_revocation",
    "limiter",
    "get_rate_limit"
]
