"""Monitoring and observability middleware"""
import time
from typing import Callable
from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from parley.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "parley_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "parley_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Error metrics
http_errors_total = Counter(
    "parley_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Session lifecycle metrics
auth_events_total = Counter(
    "parley_auth_events_total",
    "Session operations by outcome",
    ["operation", "outcome"]  # register|login|refresh, success|failure
)

tokens_revoked_total = Counter(
    "parley_refresh_tokens_revoked_total",
    "Refresh tokens revoked",
    ["reason"]  # rotated, user, all, reuse
)

token_reuse_detected_total = Counter(
    "parley_refresh_token_reuse_detected_total",
    "Redemptions of already-revoked refresh tokens"
)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics"""
        start_time = time.time()

        method = request.method
        endpoint = request.url.path

        # Add request ID for tracing
        request_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            status = response.status_code

            duration = time.time() - start_time
            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            # Log slow requests
            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={
                        "request_id": request_id,
                        "method": method,
                        "path": endpoint,
                    }
                )

            if status >= 400:
                http_errors_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=status
                ).inc()

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception:
            http_errors_total.labels(
                method=method,
                endpoint=endpoint,
                status=500
            ).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={
                    "request_id": request_id,
                    "method": method,
                    "path": endpoint,
                },
                exc_info=True
            )
            raise


def record_auth_event(operation: str, success: bool):
    """Record a register/login/refresh outcome"""
    auth_events_total.labels(
        operation=operation,
        outcome="success" if success else "failure"
    ).inc()


def record_revocation(reason: str, count: int = 1):
    """Record refresh tokens revoked for a reason bucket"""
    if count > 0:
        tokens_revoked_total.labels(reason=reason).inc(count)


def record_reuse_detected():
    """Record a replay of an already-revoked refresh token"""
    token_reuse_detected_total.inc()
