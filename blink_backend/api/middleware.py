"""FastAPI middleware for request tracing, metrics and rate limiting"""

import uuid
import time
from typing import Dict, Iterable, Tuple

from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.types import ASGIApp

from blink_backend.infrastructure.observability.metrics import request_duration_histogram


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Add unique request ID to each request for distributed tracing"""

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """Record HTTP request metrics"""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        response = await call_next(request)

        duration = time.time() - start_time
        # Route template keeps label cardinality bounded for /{advance_id} style paths
        route = request.scope.get("route")
        request_duration_histogram.labels(
            method=request.method,
            endpoint=getattr(route, "path", request.url.path),
            status=response.status_code,
        ).observe(duration)

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Fixed-window request limit per client address.

    Each address gets max_requests per window_seconds; the counter resets when
    the window rolls over. Exempt paths (signature-gated webhooks) are never
    counted. State is in-process only.
    """

    def __init__(
        self,
        app: ASGIApp,
        max_requests: int,
        window_seconds: int,
        exempt_paths: Iterable[str] = (),
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.exempt_paths = frozenset(exempt_paths)
        # address -> (window start, count)
        self.windows: Dict[str, Tuple[float, int]] = {}
        self.last_sweep = time.monotonic()

    def sweep(self, now: float) -> None:
        """Forget clients whose window has expired"""
        expired = [client for client, (start, _) in self.windows.items() if now - start >= self.window_seconds]
        for client in expired:
            del self.windows[client]
        self.last_sweep = now

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exempt_paths:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.monotonic()
        if now - self.last_sweep >= self.window_seconds:
            self.sweep(now)

        window_start, count = self.windows.get(client, (now, 0))
        if now - window_start >= self.window_seconds:
            window_start, count = now, 0

        if count >= self.max_requests:
            retry_after = int(self.window_seconds - (now - window_start)) + 1
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Too many requests, please try again later."},
                headers={"Retry-After": str(retry_after)},
            )

        self.windows[client] = (window_start, count + 1)
        return await call_next(request)
