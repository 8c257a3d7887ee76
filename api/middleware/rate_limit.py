"""
Rate limiting middleware for the lead intake API.

Sliding-window counter per client (API key or IP). Intake forms are
public, so this is the main protection against form spam.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

EXEMPT_PATHS = ("/health", "/metrics", "/docs", "/openapi.json")


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Sliding-window rate limiter."""

    def __init__(self, app, requests_per_minute: int = 120, window_seconds: int = 60):
        super().__init__(app)
        self.requests_per_minute = requests_per_minute
        self.window_seconds = window_seconds
        self._requests: Dict[str, List[float]] = defaultdict(list)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in EXEMPT_PATHS:
            return await call_next(request)

        client_id = self._get_client_id(request)
        now = time.time()

        window_start = now - self.window_seconds
        recent = [t for t in self._requests[client_id] if t > window_start]

        if len(recent) >= self.requests_per_minute:
            self._requests[client_id] = recent
            logger.warning(f"Rate limit exceeded for {client_id}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Rate limit exceeded. Please try again later."},
                headers={"Retry-After": str(self.window_seconds)},
            )

        recent.append(now)
        self._requests[client_id] = recent
        response = await call_next(request)

        remaining = self.requests_per_minute - len(recent)
        response.headers["X-RateLimit-Limit"] = str(self.requests_per_minute)
        response.headers["X-RateLimit-Remaining"] = str(max(0, remaining))

        return response

    def _get_client_id(self, request: Request) -> str:
        """Identify client by API key or IP."""
        api_key = request.headers.get("X-API-Key")
        if api_key:
            return f"key:{api_key[:8]}"

        return f"ip:{request.client.host}" if request.client else "ip:unknown"
