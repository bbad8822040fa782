"""
Request counting for the auth endpoints.

Fixed-window counter per client IP, kept in process memory. Good enough
for a single worker; several workers each enforce their own budget.
"""

import logging
import math
import time
from typing import Callable, Dict, Optional, Sequence, Tuple

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from authflow.auth.dependencies import get_client_ip
from authflow.core.config import IPNetwork

logger = logging.getLogger(__name__)


class FixedWindowCounter:
    def __init__(self, max_requests: int, window_seconds: float,
                 timer: Callable[[], float] = time.monotonic):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._timer = timer
        self._windows: Dict[str, Tuple[float, int]] = {}

    def hit(self, key: str) -> Tuple[bool, int, float]:
        """
        Count one request for ``key``.

        Returns:
            (allowed, remaining, seconds until the window resets)
        """
        now = self._timer()
        started, count = self._windows.get(key, (now, 0))
        if now - started >= self.window_seconds:
            started, count = now, 0

        count += 1
        self._windows[key] = (started, count)
        reset_in = max(0.0, self.window_seconds - (now - started))

        if count > self.max_requests:
            return False, 0, reset_in
        return True, self.max_requests - count, reset_in

    def prune(self) -> None:
        now = self._timer()
        expired = [k for k, (started, _) in self._windows.items()
                   if now - started >= self.window_seconds]
        for key in expired:
            del self._windows[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Return 429 once a client exceeds its budget on the protected prefix."""

    def __init__(
        self,
        app,
        max_requests: int,
        window_seconds: float,
        path_prefix: str = "/v1/auth",
        counter: Optional[FixedWindowCounter] = None,
        trusted_proxies: Sequence[IPNetwork] = (),
    ):
        super().__init__(app)
        self.trusted_proxies = tuple(trusted_proxies)
        self.path_prefix = path_prefix
        self.counter = counter or FixedWindowCounter(max_requests, window_seconds)
        self._requests_since_prune = 0

    async def dispatch(self, request: Request, call_next: Callable):
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        self._requests_since_prune += 1
        if self._requests_since_prune >= 1000:
            self.counter.prune()
            self._requests_since_prune = 0

        key = get_client_ip(request, self.trusted_proxies) or "unknown"
        allowed, remaining, reset_in = self.counter.hit(key)
        retry_after = str(max(1, math.ceil(reset_in)))

        if not allowed:
            logger.warning("Rate limit exceeded for %s on %s", key, request.url.path)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"detail": "Too many requests, please try again later",
                         "code": "rate_limited"},
                headers={"Retry-After": retry_after},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.counter.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        response.headers["X-RateLimit-Reset"] = retry_after
        return response
